from __future__ import annotations

"""
Result recording.

One call == one batch == one transaction:
- the whole batch is validated before anything is written
- each submission is interpreted and upserted by (sample, parameter)
- when the sample is fully measured it moves to TEST_COMPLETED and the
  completion orchestrator runs inside the same transaction
"""

import logging
import math
from typing import Any, Dict, Iterable, List, Tuple

from django.conf import settings
from django.db import connection, transaction
from rest_framework.exceptions import ValidationError

from agrolab.exceptions import (
    InvalidValueError,
    NotFoundError,
    SampleLockedError,
    UnorderedParameterError,
)
from agrolab.interpretation import interpret_measurement
from agrolab.models import Sample, TestParameter, TestResult
from agrolab.services.completion import try_complete_order
from agrolab.workflows.transition_service import transition_object

logger = logging.getLogger(__name__)


TERMINAL_SAMPLE_STATES = {Sample.Status.ISSUED}

# States from which a fully measured sample advances to TEST_COMPLETED.
# REPORT_READY is the rework edge: a finished sample measured again.
COMPLETABLE_SAMPLE_STATES = {
    Sample.Status.PENDING,
    Sample.Status.IN_LAB,
    Sample.Status.TESTING,
    Sample.Status.REPORT_READY,
}


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------

def parse_value(raw: Any) -> float:
    """
    Strict numeric parsing. Raises ValueError for anything that is not a
    finite number (booleans included).
    """
    if isinstance(raw, bool) or raw is None:
        raise ValueError(f"not a number: {raw!r}")
    if isinstance(raw, (int, float)):
        value = float(raw)
    elif isinstance(raw, str):
        value = float(raw.strip())
    else:
        raise ValueError(f"not a number: {raw!r}")

    if not math.isfinite(value):
        raise ValueError(f"not finite: {raw!r}")
    return value


def _apply_statement_timeout() -> None:
    timeout_ms = getattr(settings, "RESULT_TRANSACTION_TIMEOUT_MS", None)
    if not timeout_ms or connection.vendor != "postgresql":
        return
    with connection.cursor() as cursor:
        # is_local=true: reverts at transaction end
        cursor.execute("SELECT set_config('statement_timeout', %s, true)", [str(int(timeout_ms))])


def _validate_batch(
    submissions: List[Dict[str, Any]],
    ordered: Dict[int, TestParameter],
) -> List[Tuple[TestParameter, float]]:
    parsed: List[Tuple[TestParameter, float]] = []

    for item in submissions:
        raw_pid = item.get("parameter_id") if isinstance(item, dict) else None
        try:
            pid = int(raw_pid)
        except (TypeError, ValueError):
            raise UnorderedParameterError(raw_pid)

        param = ordered.get(pid)
        if param is None:
            raise UnorderedParameterError(pid)

        raw_value = item.get("value")
        try:
            value = parse_value(raw_value)
        except ValueError:
            raise InvalidValueError(pid, raw_value, parameter_name=param.name)

        parsed.append((param, value))

    return parsed


# ---------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------

def record_results(
    *,
    sample_id: int,
    submissions: Iterable[Dict[str, Any]],
    recorded_by=None,
) -> List[TestResult]:
    """
    Record a batch of measurements for one sample.

    submissions: [{"parameter_id": <int>, "value": <text or number>}, ...]

    Raises NotFoundError, ValidationError (empty batch), SampleLockedError,
    UnorderedParameterError or InvalidValueError before any write. Database
    errors propagate and roll the batch back.
    """
    items = list(submissions or [])

    with transaction.atomic():
        _apply_statement_timeout()

        try:
            sample = (
                Sample.objects.select_for_update(of=("self",))
                .select_related("order_item")
                .get(pk=sample_id)
            )
        except Sample.DoesNotExist:
            raise NotFoundError(f"Sample {sample_id} not found.")

        if not items:
            raise ValidationError({"results": ["At least one result is required."]})

        if sample.status in TERMINAL_SAMPLE_STATES:
            raise SampleLockedError(sample.sample_code, sample.status)

        ordered = {
            p.id: p
            for p in sample.order_item.parameters.prefetch_related("comparison_rules")
        }
        parsed = _validate_batch(items, ordered)

        results: List[TestResult] = []
        for param, value in parsed:
            fields = interpret_measurement(value, list(param.comparison_rules.all()), sample.sample_type)
            result, _ = TestResult.objects.update_or_create(
                sample=sample,
                parameter=param,
                defaults={"value": value, "recorded_by": recorded_by, **fields},
            )
            results.append(result)

        logger.info("Recorded %d result(s) for sample %s", len(results), sample.sample_code)

        if not sample.is_fully_measured():
            return results

        if sample.status in COMPLETABLE_SAMPLE_STATES:
            transition_object(
                kind="sample",
                object_id=sample.pk,
                to_status=Sample.Status.TEST_COMPLETED,
                performed_by=recorded_by,
            )
            logger.info("Sample %s fully measured (%d parameters)", sample.sample_code, len(ordered))

        try_complete_order(order_id=sample.order_id, performed_by=recorded_by)

    return results
