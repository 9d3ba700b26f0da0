"""OpenAlex API client.

API docs: https://docs.openalex.org/
No authentication required. Setting OPENALEX_MAILTO routes requests to the
polite pool, which has more consistent response times.
"""

from __future__ import annotations

import logging
import os
from typing import Optional

import httpx

from ..models import DataSource, TopicTotals
from .http import get_json, parsing

logger = logging.getLogger(__name__)

API_BASE = "https://api.openalex.org"


def _polite_params() -> dict:
    mailto = os.environ.get("OPENALEX_MAILTO", "")
    return {"mailto": mailto} if mailto else {}


async def fetch_topic_totals(
    openalex_id: str,
    client: Optional[httpx.AsyncClient] = None,
) -> TopicTotals:
    """Fetch all-time citation and works totals for an OpenAlex topic.

    Args:
        openalex_id: OpenAlex topic ID (e.g., 'T10017').
        client: Optional shared client; a short-lived one is created otherwise.
    """
    url = f"{API_BASE}/topics/{openalex_id}"
    data = await get_json(url, DataSource.OPENALEX, params=_polite_params(), client=client)
    with parsing(DataSource.OPENALEX, url):
        return TopicTotals(
            cited_by_count=int(data.get("cited_by_count") or 0),
            works_count=int(data.get("works_count") or 0),
        )


async def fetch_works_count(
    openalex_id: str,
    start_date: str,
    end_date: str,
    client: Optional[httpx.AsyncClient] = None,
) -> int:
    """Count works tagged with the topic published between two YYYY-MM-DD dates."""
    url = f"{API_BASE}/works"
    params = {
        "filter": f"topics.id:{openalex_id},from_publication_date:{start_date},to_publication_date:{end_date}",
        "per_page": 1,
        **_polite_params(),
    }
    data = await get_json(url, DataSource.OPENALEX_WORKS, params=params, client=client)
    with parsing(DataSource.OPENALEX_WORKS, url):
        meta = data.get("meta") or {}
        return int(meta.get("count") or 0)
