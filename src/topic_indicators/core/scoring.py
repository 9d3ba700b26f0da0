"""Composite indicator scoring and population ranking.

Raw composites are fixed-weight sums of log10(x + 1) transforms. The log keeps
topics whose counts differ by orders of magnitude on a comparable scale; the
batch job then turns those composites into percentile ranks.
"""

from __future__ import annotations

import logging
import math
from bisect import bisect_left, bisect_right
from typing import Optional, Sequence

logger = logging.getLogger(__name__)

INDICATOR_WEIGHTS = {
    "impact": {"citations": 0.55, "works": 0.25, "wiki_views": 0.20},
    "activity": {"works_12m": 0.45, "citations_12m": 0.35, "wiki_views": 0.20},
}


def log10p(value: float) -> float:
    """log10(value + 1); zero for a zero count."""
    return math.log10(value + 1)


def estimate_citations_12m(
    cited_by_count: Optional[float],
    works_count: Optional[float],
    works_last_12_months: Optional[float],
) -> float:
    """Extrapolate average citations per work onto the last 12 months of output.

    This is an approximation, not a measured count. Returns 0 whenever any
    factor is zero or missing.
    """
    if not cited_by_count or not works_count or not works_last_12_months:
        return 0.0
    return cited_by_count / works_count * works_last_12_months


def impact_score(cited_by_count: float, works_count: float, wiki_views_12m: float) -> float:
    weights = INDICATOR_WEIGHTS["impact"]
    return (
        weights["citations"] * log10p(cited_by_count)
        + weights["works"] * log10p(works_count)
        + weights["wiki_views"] * log10p(wiki_views_12m)
    )


def activity_score(works_last_12_months: float, estimated_citations_12m: float, wiki_views_12m: float) -> float:
    weights = INDICATOR_WEIGHTS["activity"]
    return (
        weights["works_12m"] * log10p(works_last_12_months)
        + weights["citations_12m"] * log10p(estimated_citations_12m)
        + weights["wiki_views"] * log10p(wiki_views_12m)
    )


def percentile_rank(sorted_values: Sequence[float], value: float) -> float:
    """Percentile of value within an ascending population, in [0, 100].

    Ties get the mid-rank: the average of the first and last index holding
    the value. A population of one ranks its member 100; an empty one gives 0.
    """
    count = len(sorted_values)
    if count == 0:
        return 0.0
    if count == 1:
        return 100.0

    first_index = bisect_left(sorted_values, value)
    last_index = bisect_right(sorted_values, value) - 1
    rank = (first_index + last_index) / 2
    return rank / (count - 1) * 100


def normalize_population(raw_values: Sequence[float]) -> list[float]:
    """Replace each raw composite with its percentile rank, rounded to 2 decimals."""
    sorted_values = sorted(raw_values)
    return [round(percentile_rank(sorted_values, value), 2) for value in raw_values]
