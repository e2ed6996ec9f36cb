from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from django.db.models import Count
from django.utils import timezone

from agrolab.models import Sample, SampleType


PENDING_SAMPLE_STATES = {
    Sample.Status.PENDING,
    Sample.Status.IN_LAB,
    Sample.Status.TESTING,
}

COMPLETE_SAMPLE_STATES = {
    Sample.Status.TEST_COMPLETED,
    Sample.Status.REPORT_READY,
    Sample.Status.ISSUED,
}


def classify_sample_status(status: str) -> Optional[str]:
    value = str(status or "").strip().upper()
    if value in PENDING_SAMPLE_STATES:
        return "pending"
    if value in COMPLETE_SAMPLE_STATES:
        return "complete"
    return None


def _month_bounds(year: int, month: int):
    if not 1 <= month <= 12:
        raise ValueError(f"month must be 1..12, got {month}")
    tz = timezone.get_current_timezone()
    start = datetime(year, month, 1, tzinfo=tz)
    end = datetime(year + 1, 1, 1, tzinfo=tz) if month == 12 else datetime(year, month + 1, 1, tzinfo=tz)
    return start, end


def monthly_sample_summary(*, year: int, month: int) -> List[Dict[str, object]]:
    """
    Samples received in the given month, per sample type:
    [{"sample_type": "SOIL", "received": 4, "complete": 3, "pending": 1}, ...]

    Every sample type is listed, zeros included.
    """
    start, end = _month_bounds(year, month)

    rows = (
        Sample.objects.filter(created_at__gte=start, created_at__lt=end)
        .values("sample_type", "status")
        .annotate(n=Count("id"))
        .order_by()
    )

    summary = {
        st: {"sample_type": st, "received": 0, "complete": 0, "pending": 0}
        for st in SampleType.values
    }
    for row in rows:
        bucket = summary.setdefault(
            row["sample_type"],
            {"sample_type": row["sample_type"], "received": 0, "complete": 0, "pending": 0},
        )
        bucket["received"] += row["n"]
        group = classify_sample_status(row["status"])
        if group:
            bucket[group] += row["n"]

    return list(summary.values())
