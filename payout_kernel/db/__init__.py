"""Database layer - engine, base classes and column types."""

from payout_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from payout_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    session_scope,
)
from payout_kernel.db.types import FlexibleBoolean, coerce_flag, round_money

__all__ = [
    "UUID",
    "Base",
    "TrackedBase",
    "UUIDString",
    "create_tables",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_engine_from_url",
    "session_scope",
    "FlexibleBoolean",
    "coerce_flag",
    "round_money",
]
