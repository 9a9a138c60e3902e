"""Database package: async engine, sessions and ORM models."""

from .connection import close_engine, get_async_database_url, get_session, init_engine
from .orm import Base


__all__ = [
    "Base",
    "close_engine",
    "get_async_database_url",
    "get_session",
    "init_engine",
]
