# agrolab/workflows/guards.py

from django.core.exceptions import PermissionDenied
from django.db import models


class WorkflowWriteGuardMixin(models.Model):
    """
    Rejects .save() calls that change a workflow-owned column.

    Those columns are written by transition_object() with a queryset update,
    so every change leaves a WorkflowTransition row. Subclasses list their
    owned columns in GUARDED_FIELDS (attribute names, so "report_id" for a
    foreign key).

    save(_workflow_bypass=True) or instance._workflow_bypass = True skips
    the check; fixtures and repair scripts only.
    """

    GUARDED_FIELDS = ("status",)

    class Meta:
        abstract = True

    def _changed_guarded_fields(self):
        stored = type(self).objects.filter(pk=self.pk).values(*self.GUARDED_FIELDS).first()
        if stored is None:
            return []
        return [f for f in self.GUARDED_FIELDS if stored[f] != getattr(self, f)]

    def save(self, *args, **kwargs):
        bypass = kwargs.pop("_workflow_bypass", False) or getattr(self, "_workflow_bypass", False)

        if not bypass and self.pk is not None:
            changed = self._changed_guarded_fields()
            if changed:
                raise PermissionDenied(
                    f"{type(self).__name__} {self.pk}: {', '.join(changed)} "
                    "can only change through a workflow transition."
                )

        return super().save(*args, **kwargs)
