"""
Pytest configuration and shared fixtures.
"""

import asyncio
from datetime import datetime, timezone
from typing import Dict, Optional, Tuple

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from topic_indicators.core.errors import ProviderError
from topic_indicators.core.models import TopicTotals
from topic_indicators.db import create_tables
from topic_indicators.store import TopicStore


class FakeProviders:
    """In-memory stand-in for the live OpenAlex/Wikipedia providers.

    Every call is appended to ``calls`` as (method, *args). Unknown OpenAlex
    ids raise ProviderError; by default a topic name resolves to itself.
    """

    def __init__(
        self,
        openalex: Optional[Dict[str, Tuple[int, int, int]]] = None,
        views: Optional[Dict[str, int]] = None,
        titles: Optional[Dict[str, Optional[str]]] = None,
        failing: Tuple[str, ...] = (),
        broken_names: Tuple[str, ...] = (),
    ):
        self.openalex = openalex or {}
        self.views = views or {}
        self.titles = titles or {}
        self.failing = set(failing)
        self.broken_names = set(broken_names)
        self.calls = []

    def _check(self, method, source):
        if method in self.failing:
            raise ProviderError(source, "HTTP 503 Service Unavailable")

    async def fetch_totals(self, openalex_id):
        self.calls.append(("fetch_totals", openalex_id))
        self._check("fetch_totals", "openalex")
        if openalex_id not in self.openalex:
            raise ProviderError("openalex", f"Missing OpenAlex metrics for {openalex_id}")
        cited, works, _ = self.openalex[openalex_id]
        return TopicTotals(cited_by_count=cited, works_count=works)

    async def fetch_recent_works_count(self, openalex_id, start_date, end_date):
        self.calls.append(("fetch_recent_works_count", openalex_id, start_date, end_date))
        self._check("fetch_recent_works_count", "openalex-works")
        if openalex_id not in self.openalex:
            raise ProviderError("openalex-works", f"Missing OpenAlex works metrics for {openalex_id}")
        return self.openalex[openalex_id][2]

    async def resolve_title(self, name):
        self.calls.append(("resolve_title", name))
        if name in self.broken_names:
            raise RuntimeError(f"unexpected payload shape for {name}")
        self._check("resolve_title", "wikipedia-search")
        return self.titles.get(name, name)

    async def fetch_views(self, title, start_compact, end_compact):
        self.calls.append(("fetch_views", title, start_compact, end_compact))
        self._check("fetch_views", "wikipedia-views")
        return self.views.get(title, 0)

    def calls_to(self, method):
        return [c for c in self.calls if c[0] == method]


@pytest.fixture
def now() -> datetime:
    """Fixed evaluation instant."""
    return datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def store(tmp_path):
    """TopicStore over a temporary SQLite file.

    NullPool keeps connections from outliving the event loop of each
    asyncio.run() call in a test.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool)
    asyncio.run(create_tables(engine))
    yield TopicStore(async_sessionmaker(engine, expire_on_commit=False))
    asyncio.run(engine.dispose())


@pytest.fixture
def fake_providers():
    """The FakeProviders class, for building providers with per-test data."""
    return FakeProviders
