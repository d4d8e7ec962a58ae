"""Database layer - engine, base classes, types and ledger immutability."""

from lease_kernel.db.base import Base, TrackedBase
from lease_kernel.db.engine import create_tables, get_engine, get_session, session_scope
from lease_kernel.db.types import MoneyType, UUIDString

__all__ = [
    "get_engine",
    "get_session",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "MoneyType",
]
