"""Concrete record stores and connection wrappers.

Only the SQLAlchemy adapter ships today; repositories and units of work
accept anything satisfying :mod:`recordspine.core.protocols`.
"""

from recordspine.core.adapters.sqlalchemy import (
    AsyncSAConnection,
    AsyncSARecordStore,
    SAConnection,
    SARecordStore,
)

__all__ = [
    "SAConnection",
    "AsyncSAConnection",
    "SARecordStore",
    "AsyncSARecordStore",
]
