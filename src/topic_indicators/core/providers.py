"""Provider bundle handed to the computor.

Wraps the OpenAlex and Wikipedia clients behind the four lookups the
computor needs, optionally sharing one httpx client across a batch run.
"""

from __future__ import annotations

from typing import Optional

import httpx

from .clients import openalex, wikipedia
from .models import TopicTotals


class Providers:
    """Live OpenAlex + Wikipedia lookups."""

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        self._client = client

    async def fetch_totals(self, openalex_id: str) -> TopicTotals:
        return await openalex.fetch_topic_totals(openalex_id, client=self._client)

    async def fetch_recent_works_count(self, openalex_id: str, start_date: str, end_date: str) -> int:
        return await openalex.fetch_works_count(openalex_id, start_date, end_date, client=self._client)

    async def resolve_title(self, name: str) -> Optional[str]:
        return await wikipedia.resolve_title(name, client=self._client)

    async def fetch_views(self, title: str, start_compact: str, end_compact: str) -> int:
        return await wikipedia.fetch_views(title, start_compact, end_compact, client=self._client)
