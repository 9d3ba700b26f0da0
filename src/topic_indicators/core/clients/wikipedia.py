"""Wikipedia search and Wikimedia pageviews client.

Search docs: https://www.mediawiki.org/wiki/API:Search
Pageviews docs: https://wikimedia.org/api/rest_v1/#/Pageviews%20data
Wikimedia rejects requests without a descriptive User-Agent.
"""

from __future__ import annotations

import logging
import os
from typing import Optional
from urllib.parse import quote

import httpx

from ... import __version__
from ..models import DataSource
from .http import get_json, parsing

logger = logging.getLogger(__name__)

SEARCH_URL = "https://en.wikipedia.org/w/api.php"
PAGEVIEWS_BASE = "https://wikimedia.org/api/rest_v1/metrics/pageviews/per-article/en.wikipedia/all-access/user"


def _headers() -> dict:
    user_agent = os.environ.get("WIKIPEDIA_USER_AGENT", f"topic-indicators/{__version__}")
    return {"User-Agent": user_agent}


def article_path(title: str) -> str:
    """Encode a display title as a pageviews path segment ('Quantum mechanics' -> 'Quantum_mechanics')."""
    return quote(title.replace(" ", "_"), safe="")


async def resolve_title(
    name: str,
    client: Optional[httpx.AsyncClient] = None,
) -> Optional[str]:
    """Return the title of the best-matching English Wikipedia article, or None."""
    params = {
        "action": "query",
        "list": "search",
        "srsearch": name,
        "srlimit": 1,
        "format": "json",
    }
    data = await get_json(SEARCH_URL, DataSource.WIKIPEDIA_SEARCH, params=params, headers=_headers(), client=client)
    with parsing(DataSource.WIKIPEDIA_SEARCH, SEARCH_URL):
        results = (data.get("query") or {}).get("search") or []
        if not results:
            return None
        title = results[0].get("title")
        if title is not None and not isinstance(title, str):
            raise TypeError(f"title is {type(title).__name__}, not str")
        return title or None


async def fetch_views(
    title: str,
    start_compact: str,
    end_compact: str,
    client: Optional[httpx.AsyncClient] = None,
) -> int:
    """Sum daily user pageviews for an article between two YYYYMMDD dates."""
    url = f"{PAGEVIEWS_BASE}/{article_path(title)}/daily/{start_compact}/{end_compact}"
    data = await get_json(url, DataSource.WIKIPEDIA_VIEWS, headers=_headers(), client=client)
    with parsing(DataSource.WIKIPEDIA_VIEWS, url):
        return sum(int(item.get("views") or 0) for item in data.get("items") or [])
