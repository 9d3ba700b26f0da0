"""Per-topic raw indicator computation.

Resolves the four raw signals for one topic (all-time citations, all-time
works, works in the last 12 months, Wikipedia views in the last 12 months),
consulting the run cache, then the topic's own cached metrics, and only then
the providers. Provider failures never escape: they are logged, recorded as
backoff state on the topic, and the previously cached value is used instead.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional, Protocol

from .errors import ComputationAbort, ProviderError
from .freshness import (
    OPENALEX_TOTALS_TTL,
    OPENALEX_WORKS_12M_TTL,
    WIKIPEDIA_VIEWS_TTL,
    backoff_active,
    is_fresh,
    record_failure,
    record_success,
)
from .models import (
    DataSource,
    IndicatorInputs,
    RawIndicators,
    Topic,
    TopicTotals,
    TrailingWindow,
)
from .run_cache import RunCache
from .scoring import activity_score, estimate_citations_12m, impact_score

logger = logging.getLogger(__name__)


class MetricProviders(Protocol):
    async def fetch_totals(self, openalex_id: str) -> TopicTotals: ...

    async def fetch_recent_works_count(self, openalex_id: str, start_date: str, end_date: str) -> int: ...

    async def resolve_title(self, name: str) -> Optional[str]: ...

    async def fetch_views(self, title: str, start_compact: str, end_compact: str) -> int: ...


async def compute_raw_indicators_for_topic(
    topic: Topic,
    providers: MetricProviders,
    run_cache: Optional[RunCache] = None,
    now: Optional[datetime] = None,
) -> RawIndicators:
    """Compute raw impact and activity composites for one topic.

    Mutates topic.metrics in place. A fresh RunCache is used when none is
    given, so a standalone call never shares lookups with anything else.

    Raises:
        ComputationAbort: on any failure other than a provider lookup.
    """
    if run_cache is None:
        run_cache = RunCache()
    if now is None:
        now = datetime.now(timezone.utc)

    try:
        return await _compute(topic, providers, run_cache, now)
    except ComputationAbort:
        raise
    except Exception as exc:
        raise ComputationAbort(topic.name, exc) from exc


async def _compute(
    topic: Topic,
    providers: MetricProviders,
    run_cache: RunCache,
    now: datetime,
) -> RawIndicators:
    metrics = topic.metrics
    window = TrailingWindow.for_now(now)

    cited_by_count = metrics.openalex.cited_by_count or 0
    works_count = metrics.openalex.works_count or 0
    works_last_12_months = metrics.openalex.works_last_12_months or 0
    wiki_views_12_months = metrics.wikipedia.views_12_months or 0

    in_backoff = backoff_active(metrics, now)
    if in_backoff:
        logger.info(
            "Topic '%s' is backing off until %s (%s); using cached metrics",
            topic.name, metrics.backoff_until.isoformat(), metrics.last_error,
        )
    else:
        if topic.openalex_id:
            cited_by_count, works_count = await _openalex_totals(topic, providers, run_cache, now)
            works_last_12_months = await _openalex_recent_works(topic, providers, run_cache, window, now)
        else:
            logger.info("No OpenAlex ID for topic '%s'; falling back to Wikipedia only", topic.name)

        wiki_views_12_months = await _wikipedia_views(topic, providers, run_cache, window, now)

    estimated_citations = estimate_citations_12m(cited_by_count, works_count, works_last_12_months)

    return RawIndicators(
        impact_raw=impact_score(cited_by_count, works_count, wiki_views_12_months),
        activity_raw=activity_score(works_last_12_months, estimated_citations, wiki_views_12_months),
        inputs=IndicatorInputs(
            cited_by_count=cited_by_count,
            works_count=works_count,
            works_last_12_months=works_last_12_months,
            wiki_views_12_months=wiki_views_12_months,
            estimated_citations_12_months=estimated_citations,
            backoff_active=in_backoff,
        ),
    )


async def _openalex_totals(
    topic: Topic,
    providers: MetricProviders,
    run_cache: RunCache,
    now: datetime,
) -> tuple[int, int]:
    metrics = topic.metrics
    cached = metrics.openalex

    totals = run_cache.openalex_totals.get(topic.openalex_id)
    if totals is None:
        if is_fresh(cached.last_fetched_at, OPENALEX_TOTALS_TTL, now):
            return cached.cited_by_count, cached.works_count
        try:
            totals = await providers.fetch_totals(topic.openalex_id)
        except ProviderError as exc:
            logger.warning("OpenAlex totals lookup failed for topic '%s': %s", topic.name, exc.message)
            record_failure(metrics, DataSource.OPENALEX, exc.message, now)
            return cached.cited_by_count, cached.works_count
        run_cache.openalex_totals[topic.openalex_id] = totals
        record_success(metrics)

    cached.cited_by_count = totals.cited_by_count
    cached.works_count = totals.works_count
    cached.last_fetched_at = now
    return totals.cited_by_count, totals.works_count


async def _openalex_recent_works(
    topic: Topic,
    providers: MetricProviders,
    run_cache: RunCache,
    window: TrailingWindow,
    now: datetime,
) -> int:
    metrics = topic.metrics
    cached = metrics.openalex
    key = RunCache.works_key(topic.openalex_id, window)

    count = run_cache.openalex_works_12m.get(key)
    if count is None:
        if is_fresh(cached.last_works_fetched_at, OPENALEX_WORKS_12M_TTL, now):
            return cached.works_last_12_months
        try:
            count = await providers.fetch_recent_works_count(topic.openalex_id, window.start_iso, window.end_iso)
        except ProviderError as exc:
            logger.warning("OpenAlex 12-month works lookup failed for topic '%s': %s", topic.name, exc.message)
            record_failure(metrics, DataSource.OPENALEX_WORKS, exc.message, now)
            return cached.works_last_12_months
        run_cache.openalex_works_12m[key] = count
        record_success(metrics)

    cached.works_last_12_months = count
    cached.last_works_fetched_at = now
    return count


async def _wikipedia_views(
    topic: Topic,
    providers: MetricProviders,
    run_cache: RunCache,
    window: TrailingWindow,
    now: datetime,
) -> int:
    """Resolve the article title, then fetch its views."""
    wiki = topic.metrics.wikipedia
    views_fresh = is_fresh(wiki.last_fetched_at, WIKIPEDIA_VIEWS_TTL, now)

    title = wiki.title
    if not title:
        try:
            title = await _resolve_title(topic, providers, run_cache, views_fresh)
        except ProviderError as exc:
            logger.warning("Wikipedia search failed for topic '%s': %s", topic.name, exc.message)
            record_failure(topic.metrics, DataSource.WIKIPEDIA_SEARCH, exc.message, now)
            return wiki.views_12_months

    if not title:
        if not views_fresh:
            # No matching article; stamp the attempt so the search is not repeated every run
            wiki.views_12_months = 0
            wiki.last_fetched_at = now
        return wiki.views_12_months

    views = run_cache.wiki_views.get(title)
    if views is None:
        if views_fresh:
            return wiki.views_12_months
        try:
            views = await providers.fetch_views(title, window.start_compact, window.end_compact)
        except ProviderError as exc:
            logger.warning("Wikipedia pageviews not available for '%s': %s", title, exc.message)
            record_failure(topic.metrics, DataSource.WIKIPEDIA_VIEWS, exc.message, now)
            return wiki.views_12_months
        run_cache.wiki_views[title] = views
        record_success(topic.metrics)

    wiki.views_12_months = views
    wiki.last_fetched_at = now
    return views


async def _resolve_title(
    topic: Topic,
    providers: MetricProviders,
    run_cache: RunCache,
    views_fresh: bool,
) -> Optional[str]:
    wiki = topic.metrics.wikipedia

    if topic.name in run_cache.wiki_titles:
        title = run_cache.wiki_titles[topic.name]
    elif views_fresh:
        return None
    else:
        title = await providers.resolve_title(topic.name)
        run_cache.wiki_titles[topic.name] = title
        record_success(topic.metrics)

    wiki.title = title
    return title
