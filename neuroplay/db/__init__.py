"""Database layer: SQLAlchemy models and session helpers."""

from neuroplay.db.database import get_engine, get_session_factory, init_db, make_engine, session_scope
from neuroplay.db.models import Base, BehavioralMetricRow, GameSessionRow

__all__ = [
    "Base",
    "GameSessionRow",
    "BehavioralMetricRow",
    "get_engine",
    "get_session_factory",
    "init_db",
    "make_engine",
    "session_scope",
]
