"""Database layer - engine handle and declarative base classes."""

from stock_kernel.db.base import Base, TrackedBase, UUIDString
from stock_kernel.db.engine import Database

__all__ = [
    "Base",
    "Database",
    "TrackedBase",
    "UUIDString",
]
