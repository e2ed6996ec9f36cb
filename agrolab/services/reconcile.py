from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from django.db import transaction
from django.db.models import Exists, OuterRef

from agrolab.models import Order, Sample
from agrolab.services.completion import try_complete_order

logger = logging.getLogger(__name__)


def orders_ready_for_report():
    """
    Orders whose samples are all TEST_COMPLETED but that have not been
    promoted. These appear when sample status was changed outside the
    result recorder.
    """
    has_samples = Sample.objects.filter(order=OuterRef("pk"))
    unfinished = Sample.objects.filter(order=OuterRef("pk")).exclude(status=Sample.Status.TEST_COMPLETED)

    return (
        Order.objects.exclude(status__in=[Order.Status.REPORT_GENERATED, Order.Status.CANCELLED])
        .filter(Exists(has_samples))
        .exclude(Exists(unfinished))
        .order_by("pk")
    )


def reconcile_completed_orders(*, limit: Optional[int] = None) -> Dict[str, Any]:
    """
    Run the completion orchestrator for every ready order, one transaction
    per order. A failing order is logged and reported; the rest still run.
    An order whose samples are missing results is checked but not completed.
    """
    qs = orders_ready_for_report().values_list("pk", flat=True)
    if limit:
        qs = qs[:limit]
    order_ids = list(qs)

    completed: List[int] = []
    failed: List[Dict[str, Any]] = []

    for order_id in order_ids:
        try:
            with transaction.atomic():
                report = try_complete_order(order_id=order_id)
        except Exception as exc:
            logger.exception("Reconciliation failed for order %s", order_id)
            failed.append({"order_id": order_id, "error": str(exc)})
            continue

        if report is not None:
            completed.append(order_id)

    if order_ids:
        logger.info(
            "Reconciled %d order(s): %d completed, %d failed",
            len(order_ids),
            len(completed),
            len(failed),
        )

    return {
        "checked": len(order_ids),
        "completed": completed,
        "failed": failed,
    }
