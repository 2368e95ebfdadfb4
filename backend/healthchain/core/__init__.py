"""
Core module for the HealthChain EMR backend.

Contains configuration, database setup, security utilities, the response
envelope and exception handlers.
"""

from .config import settings
from .database import get_db, engine, SessionLocal

__all__ = ["settings", "get_db", "engine", "SessionLocal"]
