# agrolab/signals.py
from __future__ import annotations

import logging
from threading import local

from django.conf import settings
from django.core.mail import send_mail
from django.db import transaction
from django.db.models.signals import post_save
from django.dispatch import receiver

from agrolab.models import AuditLog, Report, TestResult, WorkflowTransition

logger = logging.getLogger(__name__)

# ===============================================================
# Thread-local user storage
# ===============================================================
_state = local()


def set_current_user(user):
    _state.user = user


def get_current_user():
    return getattr(_state, "user", None)


# ===============================================================
# Utilities
# ===============================================================
def _log(action: str, instance, details: dict | None = None):
    user = get_current_user()

    AuditLog.objects.create(
        user=user if user and user.is_authenticated else None,
        action=action,
        details=details or {
            "model": instance.__class__.__name__,
            "object_id": instance.pk,
        },
    )


def _safe_username(user) -> str:
    if not user:
        return "system"
    return user.get_username()


# ===============================================================
# Results and reports
# ===============================================================
@receiver(post_save, sender=TestResult)
def audit_test_result(sender, instance: TestResult, created: bool, **kwargs):
    _log(
        "RESULT RECORDED" if created else "RESULT UPDATED",
        instance,
        {
            "model": "TestResult",
            "object_id": instance.pk,
            "sample_id": instance.sample_id,
            "parameter_id": instance.parameter_id,
            "value": instance.value,
        },
    )


@receiver(post_save, sender=Report)
def audit_report_created(sender, instance: Report, created: bool, **kwargs):
    if not created:
        return
    _log(
        "REPORT CREATED",
        instance,
        {
            "model": "Report",
            "object_id": instance.pk,
            "order_id": instance.order_id,
            "report_number": instance.report_number,
        },
    )


# ===============================================================
# Workflow transitions
# ===============================================================
def _notify_report_generated(transition: WorkflowTransition) -> None:
    recipients = list(getattr(settings, "REPORT_NOTIFY_EMAILS", None) or [])
    if not recipients:
        return

    report_number = (
        Report.objects.filter(order_id=transition.object_id)
        .values_list("report_number", flat=True)
        .first()
    )

    subject = f"[AGRO-LIMS] Order {transition.object_id} report generated"
    body = "\n".join(
        [
            "All samples of the order are measured and a report is ready for review.",
            "",
            f"Order ID: {transition.object_id}",
            f"Report: {report_number or '-'}",
            f"From: {transition.from_status}",
            f"By: {_safe_username(transition.performed_by)}",
            f"At: {transition.created_at}",
        ]
    )

    try:
        send_mail(
            subject=subject,
            message=body,
            from_email=getattr(settings, "DEFAULT_FROM_EMAIL", None),
            recipient_list=recipients,
            fail_silently=False,
        )
    except OSError:
        logger.exception("Report notification for order %s could not be sent", transition.object_id)


@receiver(post_save, sender=WorkflowTransition)
def audit_workflow_transition(sender, instance: WorkflowTransition, created: bool, **kwargs):
    """
    - audit log entry for every transition
    - optional email once an order reaches REPORT_GENERATED, sent only
      after the surrounding transaction commits
    """
    if not created:
        return

    AuditLog.objects.create(
        user=instance.performed_by,
        action=(
            f"WORKFLOW {instance.kind.upper()} {instance.object_id}: "
            f"{instance.from_status} -> {instance.to_status}"
        ),
        details={
            "kind": instance.kind,
            "object_id": instance.object_id,
            "from": instance.from_status,
            "to": instance.to_status,
        },
    )

    if instance.kind != "order" or instance.to_status != "REPORT_GENERATED":
        return
    if not getattr(settings, "REPORT_EMAIL_NOTIFICATIONS", False):
        return

    transaction.on_commit(lambda: _notify_report_generated(instance))
