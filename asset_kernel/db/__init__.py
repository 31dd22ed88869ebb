"""Database layer - engine, base classes, types, and transaction boundary."""

from asset_kernel.db.base import Base, TrackedBase
from asset_kernel.db.engine import (
    build_engine,
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
)
from asset_kernel.db.transaction import atomic
from asset_kernel.db.types import UTCDateTime, UUIDString

__all__ = [
    "atomic",
    "build_engine",
    "create_tables",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_engine_from_url",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UTCDateTime",
]
