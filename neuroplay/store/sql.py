"""
SQLAlchemy-backed record store.

Works against sqlite for local play and PostgreSQL for shared deployments.
Driver errors are wrapped in StoreError so the engine can decide whether a
failure is fatal (start) or retried (checkpoint).
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from loguru import logger
from sqlalchemy import Engine, select
from sqlalchemy.exc import SQLAlchemyError

from neuroplay.db.database import get_engine, get_session_factory, init_db, session_scope
from neuroplay.db.models import BehavioralMetricRow, GameSessionRow
from neuroplay.engine.errors import SessionNotFoundError, StoreError

TIMESTAMP_FIELDS = ("started_at", "last_checkpoint_at", "ended_at")
SESSION_FIELDS = (
    "id",
    "game_id",
    "actor_id",
    "level",
    "score",
    "status",
    "performance_snapshot",
    "context",
    *TIMESTAMP_FIELDS,
)


def _to_datetime(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    ts = value if isinstance(value, datetime) else datetime.fromisoformat(str(value))
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def _to_iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def _row_to_dict(row: GameSessionRow) -> dict[str, Any]:
    data = {name: getattr(row, name) for name in SESSION_FIELDS}
    for name in TIMESTAMP_FIELDS:
        data[name] = _to_iso(data[name])
    data["performance_snapshot"] = dict(data["performance_snapshot"] or {})
    data["context"] = dict(data["context"] or {})
    return data


class SqlRecordStore:
    """RecordStore over the game_sessions / behavioral_metrics tables."""

    def __init__(self, engine: Engine | None = None, create_tables: bool = True):
        self.engine = engine or get_engine()
        self._factory = get_session_factory(self.engine)
        if create_tables:
            init_db(self.engine)

    def create_session(self, row: dict[str, Any]) -> dict[str, Any]:
        values = self._coerce(row)
        try:
            with session_scope(self._factory) as session:
                record = GameSessionRow(**values)
                session.add(record)
                session.flush()
                return _row_to_dict(record)
        except SQLAlchemyError as e:
            raise StoreError(f"create_session failed: {e}") from e

    def update_session(self, session_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        values = self._coerce(fields)
        values.pop("id", None)
        try:
            with session_scope(self._factory) as session:
                record = session.get(GameSessionRow, session_id)
                if record is None:
                    raise SessionNotFoundError(f"Session {session_id} not found")
                for name, value in values.items():
                    setattr(record, name, value)
                session.flush()
                return _row_to_dict(record)
        except SQLAlchemyError as e:
            raise StoreError(f"update_session failed: {e}") from e

    def get_session(self, session_id: str) -> dict[str, Any] | None:
        try:
            with session_scope(self._factory) as session:
                record = session.get(GameSessionRow, session_id)
                return _row_to_dict(record) if record is not None else None
        except SQLAlchemyError as e:
            raise StoreError(f"get_session failed: {e}") from e

    def query_sessions(
        self,
        actor_id: str | None,
        game_id: str | None = None,
        status: str | None = None,
    ) -> list[dict[str, Any]]:
        stmt = select(GameSessionRow)
        if actor_id is None:
            stmt = stmt.where(GameSessionRow.actor_id.is_(None))
        else:
            stmt = stmt.where(GameSessionRow.actor_id == actor_id)
        if game_id is not None:
            stmt = stmt.where(GameSessionRow.game_id == game_id)
        if status is not None:
            stmt = stmt.where(GameSessionRow.status == status)
        stmt = stmt.order_by(GameSessionRow.last_checkpoint_at.desc())

        try:
            with session_scope(self._factory) as session:
                return [_row_to_dict(r) for r in session.scalars(stmt).all()]
        except SQLAlchemyError as e:
            raise StoreError(f"query_sessions failed: {e}") from e

    def append_metric(self, row: dict[str, Any]) -> None:
        try:
            with session_scope(self._factory) as session:
                session.add(
                    BehavioralMetricRow(
                        session_id=row.get("session_id"),
                        actor_id=row.get("actor_id"),
                        game_id=row["game_id"],
                        metric_type=row["metric_type"],
                        category=row["category"],
                        value=float(row["value"]),
                        context_data=dict(row.get("context_data") or {}),
                        timestamp=_to_datetime(row.get("timestamp")),
                    )
                )
        except SQLAlchemyError as e:
            raise StoreError(f"append_metric failed: {e}") from e

    def list_metrics(self, session_id: str) -> list[dict[str, Any]]:
        """Metric rows for one session, oldest first."""
        stmt = (
            select(BehavioralMetricRow)
            .where(BehavioralMetricRow.session_id == session_id)
            .order_by(BehavioralMetricRow.id)
        )
        with session_scope(self._factory) as session:
            return [
                {
                    "metric_type": m.metric_type,
                    "category": m.category,
                    "value": m.value,
                    "context_data": dict(m.context_data or {}),
                    "game_id": m.game_id,
                    "session_id": m.session_id,
                    "actor_id": m.actor_id,
                    "timestamp": _to_iso(m.timestamp),
                }
                for m in session.scalars(stmt).all()
            ]

    @staticmethod
    def _coerce(row: dict[str, Any]) -> dict[str, Any]:
        values = {k: v for k, v in row.items() if k in SESSION_FIELDS}
        for name in TIMESTAMP_FIELDS:
            if name in values:
                values[name] = _to_datetime(values[name])
        unknown = set(row) - set(SESSION_FIELDS)
        if unknown:
            logger.debug(f"Ignoring unknown session fields: {sorted(unknown)}")
        return values
