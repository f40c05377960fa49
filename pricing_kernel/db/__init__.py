"""Database layer - engine, base classes, types, and immutability."""

from pricing_kernel.db.base import Base, TrackedBase, UUIDString
from pricing_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    session_scope,
)
from pricing_kernel.db.types import round_money, to_decimal

__all__ = [
    "init_engine_from_url",
    "get_engine",
    "get_session",
    "get_session_factory",
    "session_scope",
    "create_tables",
    "drop_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "round_money",
    "to_decimal",
]
