# src/launchpad_federation/db/__init__.py
"""Database configuration and utilities."""

from .session import SessionLocal, get_db, session_scope
from .time import utcnow

__all__ = ["get_db", "session_scope", "SessionLocal", "utcnow"]
