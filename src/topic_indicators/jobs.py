"""Indicator computation entry points.

compute_impact_for_all_topics is the scheduled batch: it scores every topic
with one shared run cache, then replaces raw composites with percentile ranks
across the population. compute_impact_for_topic scores a single topic and
persists its raw composites as-is, without ranking.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

import httpx

from .core.computor import MetricProviders, compute_raw_indicators_for_topic
from .core.errors import ComputationAbort, StoreError
from .core.models import BatchResult, RawIndicators, Topic
from .core.providers import Providers
from .core.run_cache import RunCache
from .core.scoring import normalize_population
from .store import TopicStore

logger = logging.getLogger(__name__)

LAST_BATCH_RUN_KEY = "last_batch_run"

HTTP_TIMEOUT = httpx.Timeout(30.0, connect=10.0)


async def compute_impact_for_topic(
    topic: Topic,
    store: TopicStore,
    providers: Optional[MetricProviders] = None,
    run_cache: Optional[RunCache] = None,
    now: Optional[datetime] = None,
) -> Optional[Topic]:
    """Compute and persist raw impact/activity for one topic.

    The stored values are raw composites, not percentile ranks; they stay
    that way until the next batch run ranks the whole population.

    Returns the updated topic, or None if the computation or the save failed.
    """
    now = now or datetime.now(timezone.utc)
    try:
        if providers is None:
            async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as client:
                raw = await compute_raw_indicators_for_topic(topic, Providers(client), run_cache, now)
        else:
            raw = await compute_raw_indicators_for_topic(topic, providers, run_cache, now)
    except ComputationAbort as exc:
        logger.error("Error computing impact for topic '%s': %s", topic.name, exc.cause, exc_info=exc.cause)
        return None

    topic.impact = raw.impact_raw
    topic.activity = raw.activity_raw
    topic.metrics.last_computed_at = now

    try:
        await store.save(topic)
    except StoreError as exc:
        logger.error("Failed to save topic '%s': %s", topic.name, exc)
        return None

    logger.info("Updated topic '%s': impact = %s, activity = %s", topic.name, topic.impact, topic.activity)
    return topic


async def compute_impact_for_all_topics(
    store: TopicStore,
    providers: Optional[MetricProviders] = None,
    now: Optional[datetime] = None,
) -> BatchResult:
    """Score every topic and rank impact and activity across the population.

    Raises:
        StoreError: if the topic population cannot be loaded.
    """
    if providers is None:
        async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as client:
            return await _run_batch(store, Providers(client), now)
    return await _run_batch(store, providers, now)


async def _run_batch(
    store: TopicStore,
    providers: MetricProviders,
    now: Optional[datetime],
) -> BatchResult:
    now = now or datetime.now(timezone.utc)
    topics = await store.list_all()
    logger.info("Found %d topic(s) for impact update", len(topics))

    result = BatchResult(total_topics=len(topics), started_at=now)
    run_cache = RunCache()
    scored: list[tuple[Topic, RawIndicators]] = []

    for topic in topics:
        try:
            raw = await compute_raw_indicators_for_topic(topic, providers, run_cache, now)
        except ComputationAbort as exc:
            logger.error("Skipping topic '%s' this run: %s", topic.name, exc.cause, exc_info=exc.cause)
            result.aborted_topics.append(topic.name)
            continue
        scored.append((topic, raw))

    impact_ranks = normalize_population([raw.impact_raw for _, raw in scored])
    activity_ranks = normalize_population([raw.activity_raw for _, raw in scored])

    for (topic, _), impact, activity in zip(scored, impact_ranks, activity_ranks):
        topic.impact = impact
        topic.activity = activity
        topic.metrics.last_computed_at = now
        try:
            await store.save(topic)
        except StoreError as exc:
            logger.error("Failed to save topic '%s'; it will be retried next run: %s", topic.name, exc)
            result.failed_saves.append(topic.name)

    result.ranked_topics = len(scored)
    result.finished_at = datetime.now(timezone.utc)

    try:
        await store.set_meta(LAST_BATCH_RUN_KEY, result.finished_at.isoformat())
    except StoreError as exc:
        logger.warning("Could not record last batch run: %s", exc)

    logger.info(
        "Completed impact update: %d ranked, %d skipped, %d failed saves",
        result.ranked_topics, len(result.aborted_topics), len(result.failed_saves),
    )
    return result
