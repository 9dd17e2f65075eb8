"""Persistence layer: connection settings, the async engine and the ORM models."""

from .base import Base
from .config import Settings, get_settings
from .session import dispose_engine, get_async_session, get_engine, session_scope

# registers every table on Base.metadata
from . import models as models  # noqa: F401

__all__ = [
    "Base",
    "Settings",
    "dispose_engine",
    "get_async_session",
    "get_engine",
    "get_settings",
    "models",
    "session_scope",
]
