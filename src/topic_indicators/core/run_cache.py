"""Lookup deduplication for a single batch run.

A RunCache is created per batch (or per standalone topic computation) and
passed explicitly to the computor. It is never persisted.
"""

from __future__ import annotations

from typing import Optional

from .models import TopicTotals, TrailingWindow


class RunCache:
    """Four independent lookup tables keyed the way the providers are called."""

    def __init__(self):
        self.openalex_totals: dict[str, TopicTotals] = {}
        self.openalex_works_12m: dict[str, int] = {}
        self.wiki_titles: dict[str, Optional[str]] = {}
        self.wiki_views: dict[str, int] = {}

    @staticmethod
    def works_key(openalex_id: str, window: TrailingWindow) -> str:
        return f"{openalex_id}:{window.start_iso}:{window.end_iso}"

    def __len__(self) -> int:
        return (
            len(self.openalex_totals)
            + len(self.openalex_works_12m)
            + len(self.wiki_titles)
            + len(self.wiki_views)
        )
