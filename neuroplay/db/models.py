"""
Session Engine Models.

SQLAlchemy models for the game session store:
- Game sessions (level, score, status, performance snapshot)
- Behavioral metrics (append-only observations per attempt)
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Float, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    pass


class GameSessionRow(Base):
    """
    One play session of one game by one actor.

    At most one 'active' row per (actor_id, game_id) is surfaced to the UI;
    the recovery flow resolves older ones before a new row is created.
    """

    __tablename__ = "game_sessions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    game_id: Mapped[str] = mapped_column(Text, nullable=False)
    actor_id: Mapped[str | None] = mapped_column(Text, index=True)

    level: Mapped[int] = mapped_column(Integer, default=1)
    score: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[str] = mapped_column(String(16), default="active")  # 'active', 'completed', 'abandoned'

    performance_snapshot: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)
    context: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)

    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    last_checkpoint_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    ended_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        Index("idx_game_sessions_lookup", "actor_id", "game_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<GameSessionRow id={self.id} game={self.game_id} status={self.status} level={self.level}>"


class BehavioralMetricRow(Base):
    """Write-once observation emitted by the metrics aggregator."""

    __tablename__ = "behavioral_metrics"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[str | None] = mapped_column(String(64), index=True)
    actor_id: Mapped[str | None] = mapped_column(Text)
    game_id: Mapped[str] = mapped_column(Text, nullable=False)

    metric_type: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(Text, nullable=False)
    value: Mapped[float] = mapped_column(Float, nullable=False)
    context_data: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)

    timestamp: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        Index("idx_behavioral_metrics_type", "game_id", "metric_type"),
    )

    def __repr__(self) -> str:
        return f"<BehavioralMetricRow {self.metric_type}={self.value} game={self.game_id}>"
