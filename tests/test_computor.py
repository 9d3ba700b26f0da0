"""
Tests for per-topic raw indicator computation.
"""

import asyncio
import math
from datetime import timedelta

import httpx
import pytest

from topic_indicators.core.computor import compute_raw_indicators_for_topic
from topic_indicators.core.errors import ComputationAbort
from topic_indicators.core.freshness import BACKOFF
from topic_indicators.core.models import Topic
from topic_indicators.core.providers import Providers
from topic_indicators.core.run_cache import RunCache


def compute(topic, providers, now, run_cache=None):
    return asyncio.run(compute_raw_indicators_for_topic(topic, providers, run_cache, now))


def make_topic(name="Quantum Mechanics", openalex_id="T123"):
    return Topic(name=name, department_name="Physics", openalex_id=openalex_id)


class TestFullFetch:
    """Test a topic scored from live OpenAlex and Wikipedia data."""

    def test_scores_from_openalex_and_wikipedia(self, now, fake_providers):
        providers = fake_providers(
            openalex={"T123": (1000, 100, 20)},
            views={"Quantum Mechanics": 1500},
        )
        topic = make_topic()

        raw = compute(topic, providers, now)

        expected_impact = 0.55 * math.log10(1001) + 0.25 * math.log10(101) + 0.2 * math.log10(1501)
        expected_activity = 0.45 * math.log10(21) + 0.35 * math.log10(201) + 0.2 * math.log10(1501)
        assert raw.impact_raw == pytest.approx(expected_impact, abs=1e-9)
        assert raw.activity_raw == pytest.approx(expected_activity, abs=1e-9)
        assert raw.inputs.estimated_citations_12_months == pytest.approx(200)

    def test_writes_values_and_timestamps_back(self, now, fake_providers):
        providers = fake_providers(openalex={"T123": (1000, 100, 20)}, views={"Quantum Mechanics": 1500})
        topic = make_topic()

        compute(topic, providers, now)

        openalex = topic.metrics.openalex
        assert (openalex.cited_by_count, openalex.works_count, openalex.works_last_12_months) == (1000, 100, 20)
        assert openalex.last_fetched_at == now
        assert openalex.last_works_fetched_at == now
        assert topic.metrics.wikipedia.title == "Quantum Mechanics"
        assert topic.metrics.wikipedia.views_12_months == 1500
        assert topic.metrics.wikipedia.last_fetched_at == now
        assert topic.metrics.last_error is None

    def test_uses_trailing_twelve_month_window(self, now, fake_providers):
        providers = fake_providers(openalex={"T123": (10, 5, 1)})

        compute(make_topic(), providers, now)

        assert providers.calls_to("fetch_recent_works_count") == [
            ("fetch_recent_works_count", "T123", "2025-03-02", "2026-03-02"),
        ]
        assert providers.calls_to("fetch_views") == [
            ("fetch_views", "Quantum Mechanics", "20250302", "20260302"),
        ]


class TestCachedMetrics:
    """Test reuse of fresh cached values."""

    def test_fresh_metrics_issue_no_provider_calls(self, now, fake_providers):
        providers = fake_providers(failing=("fetch_totals", "fetch_recent_works_count", "resolve_title", "fetch_views"))
        topic = make_topic(name="Cached Topic", openalex_id="T-CACHED")
        topic.metrics.openalex.cited_by_count = 500
        topic.metrics.openalex.works_count = 50
        topic.metrics.openalex.works_last_12_months = 5
        topic.metrics.openalex.last_fetched_at = now
        topic.metrics.openalex.last_works_fetched_at = now
        topic.metrics.wikipedia.title = "Cached Topic"
        topic.metrics.wikipedia.views_12_months = 2500
        topic.metrics.wikipedia.last_fetched_at = now

        raw = compute(topic, providers, now)

        assert providers.calls == []
        expected_impact = 0.55 * math.log10(501) + 0.25 * math.log10(51) + 0.2 * math.log10(2501)
        expected_activity = 0.45 * math.log10(6) + 0.35 * math.log10(51) + 0.2 * math.log10(2501)
        assert raw.impact_raw == pytest.approx(expected_impact, abs=1e-9)
        assert raw.activity_raw == pytest.approx(expected_activity, abs=1e-9)

    def test_recompute_after_success_is_idempotent(self, now, fake_providers):
        providers = fake_providers(openalex={"T123": (1000, 100, 20)}, views={"Quantum Mechanics": 1500})
        topic = make_topic()

        first = compute(topic, providers, now)
        call_count = len(providers.calls)
        second = compute(topic, providers, now + timedelta(hours=1))

        assert len(providers.calls) == call_count
        assert second.impact_raw == pytest.approx(first.impact_raw)
        assert second.activity_raw == pytest.approx(first.activity_raw)

    def test_stale_totals_are_refetched(self, now, fake_providers):
        providers = fake_providers(openalex={"T123": (2000, 200, 20)})
        topic = make_topic()
        topic.metrics.openalex.cited_by_count = 1000
        topic.metrics.openalex.last_fetched_at = now - timedelta(days=31)
        topic.metrics.openalex.last_works_fetched_at = now

        compute(topic, providers, now)

        assert len(providers.calls_to("fetch_totals")) == 1
        assert providers.calls_to("fetch_recent_works_count") == []
        assert topic.metrics.openalex.cited_by_count == 2000


class TestWikipediaOnly:
    """Test topics without an OpenAlex id."""

    def test_no_openalex_id_and_no_title_scores_zero(self, now, fake_providers):
        providers = fake_providers(titles={"Obscure Topic": None})
        topic = make_topic(name="Obscure Topic", openalex_id=None)

        raw = compute(topic, providers, now)

        assert raw.impact_raw == 0
        assert raw.activity_raw == 0
        assert providers.calls == [("resolve_title", "Obscure Topic")]

    def test_empty_title_lookup_is_stamped(self, now, fake_providers):
        providers = fake_providers(titles={"Obscure Topic": None})
        topic = make_topic(name="Obscure Topic", openalex_id=None)

        compute(topic, providers, now)
        compute(topic, providers, now + timedelta(days=1))

        assert topic.metrics.wikipedia.last_fetched_at == now
        assert topic.metrics.wikipedia.views_12_months == 0
        assert len(providers.calls) == 1

    def test_resolved_title_is_kept_on_topic(self, now, fake_providers):
        providers = fake_providers(titles={"QM": "Quantum mechanics"}, views={"Quantum mechanics": 99})
        topic = make_topic(name="QM", openalex_id=None)

        compute(topic, providers, now)
        compute(topic, providers, now + timedelta(days=8))

        assert topic.metrics.wikipedia.title == "Quantum mechanics"
        assert len(providers.calls_to("resolve_title")) == 1
        assert len(providers.calls_to("fetch_views")) == 2


class TestProviderFailures:
    """Test failure isolation and backoff."""

    def test_failure_keeps_cached_values_and_sets_backoff(self, now, fake_providers):
        providers = fake_providers(failing=("fetch_totals",), openalex={"T123": (1, 1, 7)})
        topic = make_topic()
        earlier = now - timedelta(days=40)
        topic.metrics.openalex.cited_by_count = 300
        topic.metrics.openalex.works_count = 30
        topic.metrics.openalex.last_fetched_at = earlier
        topic.metrics.openalex.last_works_fetched_at = now
        topic.metrics.wikipedia.title = "Quantum Mechanics"
        topic.metrics.wikipedia.last_fetched_at = now

        raw = compute(topic, providers, now)

        assert providers.calls == [("fetch_totals", "T123")]
        assert raw.inputs.cited_by_count == 300
        assert raw.inputs.works_count == 30
        assert topic.metrics.openalex.last_fetched_at == earlier
        assert topic.metrics.backoff_until == now + BACKOFF
        assert topic.metrics.last_error.startswith("openalex:")

    def test_later_success_in_same_computation_clears_error_only(self, now, fake_providers):
        providers = fake_providers(failing=("fetch_totals",), openalex={"T123": (1, 1, 7)}, views={"Quantum Mechanics": 10})
        topic = make_topic()

        raw = compute(topic, providers, now)

        assert raw.inputs.works_last_12_months == 7
        assert raw.inputs.wiki_views_12_months == 10
        assert topic.metrics.last_error is None
        assert topic.metrics.backoff_until == now + BACKOFF

    def test_backoff_suppresses_all_sources(self, now, fake_providers):
        providers = fake_providers(failing=("fetch_views",), openalex={"T123": (1000, 100, 20)})
        topic = make_topic()

        compute(topic, providers, now)
        first_calls = len(providers.calls)
        topic.metrics.openalex.last_fetched_at = None
        topic.metrics.openalex.last_works_fetched_at = None

        raw = compute(topic, providers, now + timedelta(hours=2))

        assert len(providers.calls) == first_calls
        assert raw.inputs.backoff_active
        assert raw.inputs.cited_by_count == 1000

    def test_fetching_resumes_after_backoff(self, now, fake_providers):
        providers = fake_providers(failing=("fetch_views",))
        topic = make_topic(openalex_id=None)

        compute(topic, providers, now)
        providers.failing.clear()
        providers.views["Quantum Mechanics"] = 40
        raw = compute(topic, providers, now + BACKOFF + timedelta(minutes=1))

        assert raw.inputs.wiki_views_12_months == 40
        assert topic.metrics.last_error is None

    def test_title_resolution_failure_is_attributed_separately(self, now, fake_providers):
        providers = fake_providers(failing=("resolve_title",))
        topic = make_topic(openalex_id=None)

        compute(topic, providers, now)

        assert topic.metrics.last_error.startswith("wikipedia-search:")
        assert topic.metrics.wikipedia.last_fetched_at is None

    def test_unexpected_error_aborts_topic(self, now, fake_providers):
        providers = fake_providers(broken_names=("Quantum Mechanics",), openalex={"T123": (1, 1, 1)})

        with pytest.raises(ComputationAbort) as excinfo:
            compute(make_topic(), providers, now)

        assert excinfo.value.topic_name == "Quantum Mechanics"
        assert isinstance(excinfo.value.cause, RuntimeError)

    def test_malformed_payload_from_live_client_sets_backoff(self, now):
        def handler(request):
            return httpx.Response(200, json={"meta": "unavailable"})

        topic = make_topic()
        topic.metrics.openalex.cited_by_count = 300
        topic.metrics.openalex.last_fetched_at = now
        topic.metrics.wikipedia.title = "Quantum Mechanics"
        topic.metrics.wikipedia.last_fetched_at = now

        async def scenario():
            async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
                return await compute_raw_indicators_for_topic(topic, Providers(client), None, now)

        raw = asyncio.run(scenario())

        assert raw.inputs.cited_by_count == 300
        assert topic.metrics.openalex.last_works_fetched_at is None
        assert topic.metrics.backoff_until == now + BACKOFF
        assert topic.metrics.last_error.startswith("openalex-works:")


class TestRunCache:
    """Test deduplication of lookups within one run."""

    def test_shared_keys_fetch_once(self, now, fake_providers):
        providers = fake_providers(openalex={"T-SHARED": (100, 10, 5)}, views={"Shared": 77})
        run_cache = RunCache()
        first = make_topic(name="Shared", openalex_id="T-SHARED")
        second = make_topic(name="Shared", openalex_id="T-SHARED")

        a = compute(first, providers, now, run_cache)
        b = compute(second, providers, now, run_cache)

        assert len(providers.calls_to("fetch_totals")) == 1
        assert len(providers.calls_to("fetch_recent_works_count")) == 1
        assert len(providers.calls_to("resolve_title")) == 1
        assert len(providers.calls_to("fetch_views")) == 1
        assert a.impact_raw == pytest.approx(b.impact_raw)
        assert second.metrics.openalex.cited_by_count == 100
        assert second.metrics.wikipedia.views_12_months == 77

    def test_missing_title_is_cached_too(self, now, fake_providers):
        providers = fake_providers(titles={"Nothing": None})
        run_cache = RunCache()

        compute(make_topic(name="Nothing", openalex_id=None), providers, now, run_cache)
        compute(make_topic(name="Nothing", openalex_id=None), providers, now, run_cache)

        assert len(providers.calls_to("resolve_title")) == 1

    def test_standalone_calls_do_not_share_cache(self, now, fake_providers):
        providers = fake_providers(openalex={"T123": (1, 1, 1)})

        compute(make_topic(), providers, now)
        compute(make_topic(), providers, now)

        assert len(providers.calls_to("fetch_totals")) == 2
