"""Topic Indicators MCP Server.

FastMCP server exposing impact/activity computation and rankings.
Run: topic-indicators-mcp
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from mcp.server.fastmcp import FastMCP
from mcp.types import ToolAnnotations

from .core.errors import StoreError
from .core.models import Topic
from .db import close_db, init_db
from .jobs import LAST_BATCH_RUN_KEY, compute_impact_for_all_topics, compute_impact_for_topic
from .scheduler import IndicatorScheduler
from .store import TopicStore

logger = logging.getLogger(__name__)

READ_ONLY = ToolAnnotations(readOnlyHint=True, destructiveHint=False, idempotentHint=True, openWorldHint=False)
COMPUTE = ToolAnnotations(readOnlyHint=False, destructiveHint=False, idempotentHint=False, openWorldHint=True)

scheduler = IndicatorScheduler()


@asynccontextmanager
async def lifespan(server: FastMCP) -> AsyncIterator[None]:
    """Initialize database and start the weekly refresh scheduler."""
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    await init_db()
    await scheduler.start()
    try:
        yield
    finally:
        await scheduler.stop()
        await close_db()


mcp = FastMCP(
    "Topic Indicators",
    instructions="Impact and activity scores for research topics, blended from OpenAlex citations and works and Wikipedia pageviews.",
    lifespan=lifespan,
)


def _topic_summary(topic: Topic) -> dict:
    return {
        "id": topic.id,
        "name": topic.name,
        "department_name": topic.department_name,
        "openalex_id": topic.openalex_id,
        "impact": topic.impact,
        "activity": topic.activity,
    }


# ─── Tool 1: Compute One ─────────────────────────────────────────────────────


@mcp.tool(annotations=COMPUTE)
async def topic_indicators_compute(topic_id: int) -> dict:
    """Recompute raw impact and activity for one topic.

    Scores written here are raw composites, not percentiles; the next batch
    run ranks them against the whole population.

    Args:
        topic_id: Store id of the topic.
    """
    store = TopicStore()
    try:
        topic = await store.load(topic_id)
    except StoreError as exc:
        return {"title": "Topic Indicators", "error": str(exc)}

    updated = await compute_impact_for_topic(topic, store)
    if updated is None:
        return {"title": "Topic Indicators", "error": f"Computation failed for topic '{topic.name}'. See logs."}

    return {
        "title": "Topic Indicators",
        "normalized": False,
        "topic": _topic_summary(updated),
        "last_error": updated.metrics.last_error,
    }


# ─── Tool 2: Compute All ─────────────────────────────────────────────────────


@mcp.tool(annotations=COMPUTE)
async def topic_indicators_compute_all() -> dict:
    """Recompute and percentile-rank impact and activity for every topic."""
    try:
        result = await compute_impact_for_all_topics(TopicStore())
    except StoreError as exc:
        logger.error("Batch impact update failed: %s", exc)
        return {"title": "Topic Indicators Batch", "error": str(exc)}

    summary = f"Ranked {result.ranked_topics} of {result.total_topics} topic(s)."
    if result.aborted_topics:
        summary += f" Skipped: {', '.join(result.aborted_topics)}."
    if result.failed_saves:
        summary += f" Not saved: {', '.join(result.failed_saves)}."

    return {
        "title": "Topic Indicators Batch",
        "result": result.model_dump(mode="json"),
        "summary": summary,
    }


# ─── Tool 3: Rankings ────────────────────────────────────────────────────────


@mcp.tool(annotations=READ_ONLY)
async def topic_indicators_rankings(department: Optional[str] = None, limit: int = 50) -> dict:
    """Topics ordered by impact, highest first.

    Args:
        department: Optional department name filter.
        limit: Maximum number of topics to return. Default 50.
    """
    store = TopicStore()
    try:
        topics = await store.rankings(department=department, limit=limit)
        last_run = await store.get_meta(LAST_BATCH_RUN_KEY)
    except StoreError as exc:
        return {"title": "Topic Rankings", "error": str(exc)}

    return {
        "title": "Topic Rankings",
        "department": department,
        "last_batch_run": last_run,
        "topics": [_topic_summary(t) for t in topics],
    }


# ─── Tool 4: Status ──────────────────────────────────────────────────────────


@mcp.tool(annotations=READ_ONLY)
async def topic_indicators_status(topic_id: int) -> dict:
    """Cached source metrics, last error and backoff window for one topic.

    Args:
        topic_id: Store id of the topic.
    """
    try:
        topic = await TopicStore().load(topic_id)
    except StoreError as exc:
        return {"title": "Topic Status", "error": str(exc)}

    return {
        "title": "Topic Status",
        "topic": _topic_summary(topic),
        "metrics": topic.metrics.model_dump(mode="json"),
    }


def main():
    """Entry point for the CLI command."""
    mcp.run()


if __name__ == "__main__":
    main()
