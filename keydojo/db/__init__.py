"""Database utilities for the progression engine."""

from .session import (
    SessionManager,
    dispose_engine,
    get_engine,
    get_session_dependency,
    get_session_factory,
    session_scope,
)

__all__ = [
    "SessionManager",
    "dispose_engine",
    "get_engine",
    "get_session_dependency",
    "get_session_factory",
    "session_scope",
]
