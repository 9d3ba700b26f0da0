"""Freshness windows and per-topic backoff.

Backoff is coarse: one clock per topic shared by every source, so a failure
in any lookup suppresses all lookups for that topic until the window passes.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from .models import DataSource, TopicMetrics

OPENALEX_TOTALS_TTL = timedelta(days=30)
OPENALEX_WORKS_12M_TTL = timedelta(days=7)
WIKIPEDIA_VIEWS_TTL = timedelta(days=7)

BACKOFF = timedelta(hours=24)


def is_fresh(last_fetched_at: Optional[datetime], ttl: timedelta, now: datetime) -> bool:
    """Return True if a value fetched at last_fetched_at can still be reused."""
    if last_fetched_at is None:
        return False
    return now - last_fetched_at < ttl


def backoff_active(metrics: TopicMetrics, now: datetime) -> bool:
    return metrics.backoff_until is not None and metrics.backoff_until > now


def record_failure(metrics: TopicMetrics, source: DataSource, message: str, now: datetime) -> None:
    """Store the error text and push the backoff window out to now + BACKOFF."""
    metrics.last_error = f"{source.value}: {message}"
    until = now + BACKOFF
    if metrics.backoff_until is None or until > metrics.backoff_until:
        metrics.backoff_until = until


def record_success(metrics: TopicMetrics) -> None:
    # backoff_until is left alone; it expires on its own
    metrics.last_error = None
