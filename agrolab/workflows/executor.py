# agrolab/workflows/executor.py

from __future__ import annotations

import logging

from django.db import transaction

from rest_framework.exceptions import ValidationError

from agrolab.models import Order, Report, Sample
from agrolab.workflows import (
    allowed_next_states,
    is_manual_target,
    normalize_state,
    validate_transition,
)
from agrolab.workflows.transition_service import transition_object

logger = logging.getLogger(__name__)


def _apply_side_effects(*, kind: str, instance, target: str, user) -> None:
    if kind != "report":
        return

    if target == Report.Status.APPROVED:
        transition_object(
            kind="order",
            object_id=instance.order_id,
            to_status=Order.Status.COMPLETED,
            performed_by=user,
        )
    elif target == Report.Status.ISSUED:
        # Samples reworked after the report was generated stay behind.
        ready = instance.samples.filter(status=Sample.Status.REPORT_READY)
        for sample_id in ready.values_list("pk", flat=True):
            transition_object(
                kind="sample",
                object_id=sample_id,
                to_status=Sample.Status.ISSUED,
                performed_by=user,
            )


def execute_transition(*, instance, kind: str, new_status: str, user) -> dict:
    """
    User-requested status change: legality, manual-target policy, then the
    transition and its side effects in one transaction.
    """
    kind = (kind or "").strip().lower()
    current = normalize_state(getattr(instance, "status", None))
    target = normalize_state(new_status)

    # 1) Terminal state lock
    if not allowed_next_states(kind, current):
        raise ValidationError(
            {"status": f"{kind.capitalize()} is in terminal state '{current}' and cannot be modified."}
        )

    # No-op transition
    if current == target:
        return {"changed": False, "kind": kind, "object_id": instance.pk, "to_status": target}

    # 2) Only some targets may be requested by users
    if not is_manual_target(kind, target):
        raise ValidationError({"status": f"'{target}' is set by the system and cannot be requested."})

    # 3) Legality (must be field-shaped)
    try:
        validate_transition(kind=kind, old=current, new=target)
    except ValueError as e:
        raise ValidationError({"status": str(e)})

    # 4) Transition + side effects atomically
    with transaction.atomic():
        outcome = transition_object(
            kind=kind,
            object_id=instance.pk,
            to_status=target,
            performed_by=user,
        )
        _apply_side_effects(kind=kind, instance=instance, target=target, user=user)

    logger.info("%s %s: %s -> %s", kind, instance.pk, current, target)
    return outcome
