# agrolab/workflows/transition_service.py
from __future__ import annotations

from typing import Any, Dict, Optional

from django.db import transaction
from django.utils import timezone

from agrolab.models import Order, Report, Sample, WorkflowTransition


KIND_MODEL = {
    "sample": Sample,
    "order": Order,
    "report": Report,
}


def transition_object(
    *,
    kind: str,
    object_id: int,
    to_status: str,
    performed_by=None,
    extra_fields: Optional[Dict[str, Any]] = None,
    now=None,
) -> dict:
    """
    Atomically:
      1) Lock the row and read current status
      2) Write a WorkflowTransition row (only when the status changes)
      3) Update status plus any extra_fields in a single queryset update

    No legality check happens here; callers validate first (executor) or are
    system paths that own the transition (recorder, orchestrator).

    Returns a small dict for logging/testing.
    """
    now = now or timezone.now()
    kind_norm = (kind or "").strip().lower()
    to_status_norm = (to_status or "").strip().upper()

    if kind_norm not in KIND_MODEL:
        raise ValueError(f"Unknown workflow kind: {kind_norm}")
    if not to_status_norm:
        raise ValueError("to_status is required")

    model = KIND_MODEL[kind_norm]
    fields = dict(extra_fields or {})

    with transaction.atomic():
        obj = model.objects.select_for_update().get(pk=object_id)
        from_status = (getattr(obj, "status", "") or "").strip().upper()
        changed = from_status != to_status_norm

        t = None
        if changed:
            t = WorkflowTransition.objects.create(
                kind=kind_norm,
                object_id=obj.pk,
                from_status=from_status,
                to_status=to_status_norm,
                performed_by=performed_by,
            )

        # Queryset update bypasses the save-level write guard.
        if changed or fields:
            model.objects.filter(pk=obj.pk).update(
                status=to_status_norm,
                updated_at=now,
                **fields,
            )

        return {
            "changed": changed,
            "kind": kind_norm,
            "object_id": obj.pk,
            "from_status": from_status,
            "to_status": to_status_norm,
            "transition_id": t.id if t else None,
        }
