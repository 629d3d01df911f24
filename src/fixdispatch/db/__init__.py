"""Database module."""

from fixdispatch.db.enums import DispatchStatus
from fixdispatch.db.models import Base, DispatchItem
from fixdispatch.db.session import async_session, close_engine, get_engine, get_session

__all__ = [
    "Base",
    "DispatchItem",
    "DispatchStatus",
    "async_session",
    "close_engine",
    "get_engine",
    "get_session",
]
