# agrolab/models/core.py

from django.conf import settings
from django.db import models


# ============================================================
# Base
# ============================================================
class TimeStampedModel(models.Model):
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


# ============================================================
# Audit Log
# ============================================================
class AuditLog(TimeStampedModel):
    """Track actions for compliance and traceability."""

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
    )
    action = models.CharField(max_length=255)
    details = models.JSONField(default=dict, blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["action", "created_at"], name="audit_action_time_idx"),
        ]

    def __str__(self):
        return self.action


# ============================================================
# Workflow Transition
# ============================================================
class WorkflowTransition(models.Model):
    """
    Status timeline. One row per effective status change of a sample,
    order or report; written by the transition service only.
    """

    KIND_CHOICES = (
        ("sample", "Sample"),
        ("order", "Order"),
        ("report", "Report"),
    )

    kind = models.CharField(max_length=32, choices=KIND_CHOICES)
    object_id = models.PositiveBigIntegerField()
    from_status = models.CharField(max_length=50)
    to_status = models.CharField(max_length=50)

    performed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="workflow_transitions",
    )

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(fields=["kind", "object_id"]),
        ]

    def __str__(self):
        return (
            f"{self.kind}:{self.object_id} "
            f"{self.from_status} -> {self.to_status}"
        )
