"""Topic metric store backed by the local SQLite database.

Converts between TopicRecord rows and pydantic Topic objects. All SQLAlchemy
failures surface as StoreError. SQLite drops tzinfo on the way back out, so
every datetime read from a row is re-attached to UTC.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .core.errors import StoreError
from .core.models import OpenAlexMetrics, Topic, TopicMetrics, WikipediaMetrics
from .db import get_session_factory
from .sqlmodels import JobMeta, TopicRecord

logger = logging.getLogger(__name__)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _to_topic(row: TopicRecord) -> Topic:
    return Topic(
        id=row.id,
        name=row.name,
        department_name=row.department_name,
        openalex_id=row.openalex_id,
        impact=row.impact,
        activity=row.activity,
        metrics=TopicMetrics(
            openalex=OpenAlexMetrics(
                cited_by_count=row.openalex_cited_by_count or 0,
                works_count=row.openalex_works_count or 0,
                works_last_12_months=row.openalex_works_last_12_months or 0,
                last_fetched_at=_as_utc(row.openalex_last_fetched_at),
                last_works_fetched_at=_as_utc(row.openalex_last_works_fetched_at),
            ),
            wikipedia=WikipediaMetrics(
                title=row.wikipedia_title,
                views_12_months=row.wikipedia_views_12_months or 0,
                last_fetched_at=_as_utc(row.wikipedia_last_fetched_at),
            ),
            last_error=row.last_error,
            backoff_until=_as_utc(row.backoff_until),
            last_computed_at=_as_utc(row.last_computed_at),
        ),
    )


def _apply(row: TopicRecord, topic: Topic) -> None:
    metrics = topic.metrics
    row.name = topic.name
    row.department_name = topic.department_name
    row.openalex_id = topic.openalex_id
    row.impact = topic.impact
    row.activity = topic.activity
    row.openalex_cited_by_count = metrics.openalex.cited_by_count
    row.openalex_works_count = metrics.openalex.works_count
    row.openalex_works_last_12_months = metrics.openalex.works_last_12_months
    row.openalex_last_fetched_at = metrics.openalex.last_fetched_at
    row.openalex_last_works_fetched_at = metrics.openalex.last_works_fetched_at
    row.wikipedia_title = metrics.wikipedia.title
    row.wikipedia_views_12_months = metrics.wikipedia.views_12_months
    row.wikipedia_last_fetched_at = metrics.wikipedia.last_fetched_at
    row.last_error = metrics.last_error
    row.backoff_until = metrics.backoff_until
    row.last_computed_at = metrics.last_computed_at


class TopicStore:
    """Load and persist topics."""

    def __init__(self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None):
        self._session_factory = session_factory or get_session_factory()

    async def list_all(self) -> list[Topic]:
        """Every topic, in insertion order."""
        try:
            async with self._session_factory() as session:
                result = await session.execute(select(TopicRecord).order_by(TopicRecord.id.asc()))
                rows = result.scalars().all()
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to load topics: {exc}") from exc
        return [_to_topic(row) for row in rows]

    async def load(self, topic_id: int) -> Topic:
        try:
            async with self._session_factory() as session:
                row = await session.get(TopicRecord, topic_id)
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to load topic {topic_id}: {exc}") from exc
        if row is None:
            raise StoreError(f"Topic {topic_id} not found")
        return _to_topic(row)

    async def add(self, topic: Topic) -> Topic:
        """Insert a new topic and return it with its assigned id."""
        row = TopicRecord()
        _apply(row, topic)
        try:
            async with self._session_factory() as session:
                session.add(row)
                await session.flush()
                topic.id = row.id
                await session.commit()
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to add topic '{topic.name}': {exc}") from exc
        return topic

    async def save(self, topic: Topic) -> None:
        """Write a topic's scores and metric snapshot back to its row."""
        if topic.id is None:
            raise StoreError(f"Topic '{topic.name}' has no id; use add() for new topics")
        try:
            async with self._session_factory() as session:
                row = await session.get(TopicRecord, topic.id)
                if row is None:
                    raise StoreError(f"Topic {topic.id} not found")
                _apply(row, topic)
                await session.commit()
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to save topic '{topic.name}': {exc}") from exc

    async def rankings(self, department: Optional[str] = None, limit: int = 50) -> list[Topic]:
        """Topics ordered by impact, highest first."""
        query = select(TopicRecord).order_by(TopicRecord.impact.desc(), TopicRecord.id.asc()).limit(limit)
        if department:
            query = query.where(TopicRecord.department_name == department)
        try:
            async with self._session_factory() as session:
                result = await session.execute(query)
                rows = result.scalars().all()
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to load rankings: {exc}") from exc
        return [_to_topic(row) for row in rows]

    async def set_meta(self, key: str, value: str) -> None:
        now = datetime.now(timezone.utc)
        try:
            async with self._session_factory() as session:
                result = await session.execute(select(JobMeta).where(JobMeta.key == key))
                row = result.scalar_one_or_none()
                if row:
                    row.value = value
                    row.updated_at = now
                else:
                    session.add(JobMeta(key=key, value=value, updated_at=now))
                await session.commit()
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to record {key}: {exc}") from exc

    async def get_meta(self, key: str) -> Optional[str]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(select(JobMeta).where(JobMeta.key == key))
                row = result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to read {key}: {exc}") from exc
        return row.value if row else None
