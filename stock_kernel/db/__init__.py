"""Database layer - engine, declarative base and quantity helpers."""

from stock_kernel.db.base import UUID, ActorTrackedBase, Base, UUIDString
from stock_kernel.db.engine import create_tables, get_engine, get_session, init_engine_from_url
from stock_kernel.db.types import format_quantity, to_quantity

__all__ = [
    "init_engine_from_url",
    "get_engine",
    "get_session",
    "create_tables",
    "Base",
    "ActorTrackedBase",
    "UUIDString",
    "UUID",
    "to_quantity",
    "format_quantity",
]
