from __future__ import annotations

"""
Order completion.

try_complete_order() is the only code path that links reports to orders and
samples. It must run inside the caller's transaction: the Order row lock
serialises concurrent completions, and the Report.order one-to-one
constraint settles whatever the lock does not.
"""

import logging
import random
from typing import Optional, Tuple

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.transaction import TransactionManagementError
from django.utils import timezone

from agrolab.exceptions import ConsistencyViolation, NotFoundError
from agrolab.models import Order, Report, Sample, TestResult
from agrolab.workflows.transition_service import transition_object

logger = logging.getLogger(__name__)


def generate_report_number(now=None) -> str:
    """REP-<epoch ms>-<0..999>. Uniqueness is enforced by the column, not here."""
    ms = int((now or timezone.now()).timestamp() * 1000)
    return f"REP-{ms}-{random.randint(0, 999)}"


def _last_technician(order: Order):
    last = (
        TestResult.objects.filter(sample__order=order, recorded_by__isnull=False)
        .select_related("recorded_by")
        .order_by("-updated_at", "-id")
        .first()
    )
    return last.recorded_by if last else order.operator


# ---------------------------------------------------------------------
# Report upsert
# ---------------------------------------------------------------------

def _create_report(order: Order, generated_by=None) -> Report:
    try:
        with transaction.atomic():
            return Report.objects.create(
                order=order,
                client_id=order.client_id,
                invoice_id=order.invoice_id,
                generated_by=generated_by,
                report_number=generate_report_number(),
            )
    except IntegrityError as exc:
        raise ConsistencyViolation(f"Report insert for order {order.pk} rejected: {exc}") from exc


def _refresh_report(report: Report, performed_by=None) -> Report:
    outcome = transition_object(
        kind="report",
        object_id=report.pk,
        to_status=Report.Status.DRAFT,
        performed_by=performed_by,
    )
    if not outcome["changed"]:
        Report.objects.filter(pk=report.pk).update(updated_at=timezone.now())
    report.refresh_from_db()
    return report


def upsert_report(*, order: Order, existing: Optional[Report] = None, generated_by=None) -> Tuple[Report, bool]:
    """
    Create the order's report, or refresh the one that exists.

    `existing` is the caller's view of the order's report and may be stale:
    if another transaction created one in the meantime the insert fails on
    the one-to-one constraint and the competing report is refreshed instead.
    A report_number collision alone is retried with a fresh number.

    Returns (report, created).
    """
    if existing is not None:
        logger.info("Refreshing report %s for order %s", existing.report_number, order.pk)
        return _refresh_report(existing, performed_by=generated_by), False

    attempts = max(1, int(getattr(settings, "REPORT_NUMBER_ATTEMPTS", 3)))
    for attempt in range(1, attempts + 1):
        try:
            report = _create_report(order, generated_by=generated_by)
        except ConsistencyViolation:
            competing = Report.objects.filter(order_id=order.pk).first()
            if competing is not None:
                logger.warning(
                    "Report for order %s was created concurrently; refreshing %s",
                    order.pk,
                    competing.report_number,
                )
                return _refresh_report(competing, performed_by=generated_by), False

            logger.warning(
                "Report number collision for order %s (attempt %d/%d)",
                order.pk,
                attempt,
                attempts,
            )
            continue

        logger.info("Created report %s for order %s", report.report_number, order.pk)
        return report, True

    raise ConsistencyViolation(f"Could not allocate a unique report number for order {order.pk}.")


# ---------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------

def try_complete_order(*, order_id: int, performed_by=None) -> Optional[Report]:
    """
    Drive Order -> Report once every sample of the order is TEST_COMPLETED.

    Every sample must also hold a result for each ordered parameter; the
    status alone is not trusted.

    Returns the order's report, or None when the order is not ready
    (no samples, a sample still in progress or missing results, or the
    order was cancelled).
    """
    if not transaction.get_connection().in_atomic_block:
        raise TransactionManagementError("try_complete_order() must run inside transaction.atomic().")

    try:
        order = Order.objects.select_for_update(of=("self",)).select_related("operator").get(pk=order_id)
    except Order.DoesNotExist:
        raise NotFoundError(f"Order {order_id} not found.")

    if order.status == Order.Status.CANCELLED:
        logger.info("Order %s is cancelled; not completing", order.pk)
        return None

    samples = list(order.samples.select_related("order_item"))
    if not samples or any(s.status != Sample.Status.TEST_COMPLETED for s in samples):
        return None

    unmeasured = [s.sample_code for s in samples if not s.is_fully_measured()]
    if unmeasured:
        logger.warning(
            "Order %s not completed: sample(s) %s marked TEST_COMPLETED without every ordered result",
            order.pk,
            ", ".join(unmeasured),
        )
        return None

    existing = Report.objects.filter(order=order).first()
    report, created = upsert_report(
        order=order,
        existing=existing,
        generated_by=performed_by or _last_technician(order),
    )

    transition_object(
        kind="order",
        object_id=order.pk,
        to_status=Order.Status.REPORT_GENERATED,
        performed_by=performed_by,
    )

    for sample in samples:
        transition_object(
            kind="sample",
            object_id=sample.pk,
            to_status=Sample.Status.REPORT_READY,
            performed_by=performed_by,
            extra_fields={"report": report},
        )

    logger.info(
        "Order %s completed: report %s (%s), %d sample(s) report-ready",
        order.pk,
        report.report_number,
        "created" if created else "refreshed",
        len(samples),
    )
    return report
