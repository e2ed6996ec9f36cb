# agrolab/tasks.py
from __future__ import annotations

from celery import shared_task

from agrolab.services.reconcile import reconcile_completed_orders


@shared_task
def reconcile_orders(limit: int | None = None) -> dict:
    return reconcile_completed_orders(limit=limit)
