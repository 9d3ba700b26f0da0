"""SQLAlchemy models for local SQLite topic storage.

The metric snapshot is flattened into columns on the topic row so a topic
is always read and written as one record.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Float, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class TopicRecord(Base):
    """A topic with its scores and cached per-source metrics."""

    __tablename__ = "topics"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    department_name: Mapped[str] = mapped_column(String(200), nullable=False)
    openalex_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    impact: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    activity: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    openalex_cited_by_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    openalex_works_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    openalex_works_last_12_months: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    openalex_last_fetched_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    openalex_last_works_fetched_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    wikipedia_title: Mapped[str | None] = mapped_column(String(500), nullable=True)
    wikipedia_views_12_months: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    wikipedia_last_fetched_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    backoff_until: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_computed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_topic_department", "department_name"),
        Index("ix_topic_openalex_id", "openalex_id"),
    )


class JobMeta(Base):
    """Track when the last batch run happened."""

    __tablename__ = "job_meta"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    key: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
