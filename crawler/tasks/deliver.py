"""Celery tasks for the digest delivery stage."""

from __future__ import annotations

from typing import Dict

from celery import shared_task

from publish.digest import dispatch_digests


@shared_task(
    name="crawler.tasks.deliver.deliver_digests",
    queue="pressreview.deliver",
)
def deliver_digests(email: str | None = None) -> Dict[str, int]:  # pragma: no cover - thin Celery wrapper
    """Send digests to every reader whose next send time has passed."""
    return dispatch_digests(email=email).as_dict()
