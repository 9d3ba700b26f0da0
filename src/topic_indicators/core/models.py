"""Pydantic data models: the shared business objects.

The store, the computor, the batch job and the MCP tools all exchange these
models. Metric sub-blocks default to empty so a topic that has never been
scored is initialized lazily on first computation.
"""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class DataSource(str, Enum):
    """External lookups, used as the prefix of a topic's last error."""

    OPENALEX = "openalex"
    OPENALEX_WORKS = "openalex-works"
    WIKIPEDIA_SEARCH = "wikipedia-search"
    WIKIPEDIA_VIEWS = "wikipedia-views"


class OpenAlexMetrics(BaseModel):
    """Cached OpenAlex values for one topic."""

    cited_by_count: int = 0
    works_count: int = 0
    works_last_12_months: int = 0
    last_fetched_at: Optional[datetime] = None
    last_works_fetched_at: Optional[datetime] = None


class WikipediaMetrics(BaseModel):
    """Cached Wikipedia values for one topic."""

    title: Optional[str] = None
    views_12_months: int = 0
    last_fetched_at: Optional[datetime] = None


class TopicMetrics(BaseModel):
    """Per-topic metric snapshot, mutated in place by the computor."""

    openalex: OpenAlexMetrics = Field(default_factory=OpenAlexMetrics)
    wikipedia: WikipediaMetrics = Field(default_factory=WikipediaMetrics)
    last_error: Optional[str] = None
    backoff_until: Optional[datetime] = None
    last_computed_at: Optional[datetime] = None


class Topic(BaseModel):
    """A scored topic.

    impact and activity hold raw composites after the single-topic path and
    percentile ranks in [0, 100] after a batch run.
    """

    id: Optional[int] = None
    name: str
    department_name: str
    openalex_id: Optional[str] = None
    impact: float = 0.0
    activity: float = 0.0
    metrics: TopicMetrics = Field(default_factory=TopicMetrics)


class TopicTotals(BaseModel):
    """All-time OpenAlex totals for a topic."""

    cited_by_count: int = 0
    works_count: int = 0


class TrailingWindow(BaseModel):
    """The trailing twelve months ending at a given instant, in UTC."""

    start: date
    end: date

    @classmethod
    def for_now(cls, now: datetime) -> "TrailingWindow":
        end = now.date()
        try:
            start = end.replace(year=end.year - 1)
        except ValueError:
            # 29 February
            start = end.replace(year=end.year - 1, day=28)
        return cls(start=start, end=end)

    @property
    def start_iso(self) -> str:
        return self.start.isoformat()

    @property
    def end_iso(self) -> str:
        return self.end.isoformat()

    @property
    def start_compact(self) -> str:
        return self.start.strftime("%Y%m%d")

    @property
    def end_compact(self) -> str:
        return self.end.strftime("%Y%m%d")


class IndicatorInputs(BaseModel):
    """Signal values that went into a topic's raw composites."""

    cited_by_count: float = 0
    works_count: float = 0
    works_last_12_months: float = 0
    wiki_views_12_months: float = 0
    estimated_citations_12_months: float = 0
    backoff_active: bool = False


class RawIndicators(BaseModel):
    """Raw composite scores for one topic before population ranking."""

    impact_raw: float
    activity_raw: float
    inputs: IndicatorInputs


class BatchResult(BaseModel):
    """Outcome of one batch run over the whole topic population."""

    total_topics: int = 0
    ranked_topics: int = 0
    aborted_topics: list[str] = Field(default_factory=list)
    failed_saves: list[str] = Field(default_factory=list)
    started_at: datetime
    finished_at: Optional[datetime] = None
