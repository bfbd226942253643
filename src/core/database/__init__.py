"""
Database subsystem for Rankstream.

Provides the async SQLAlchemy engine and session management. Models are
SQLModel tables and register on ``SQLModel.metadata``.
"""

from src.core.database.service import (
    DatabaseInitializationError,
    DatabaseNotInitializedError,
    DatabaseService,
)

__all__ = [
    # Main service
    "DatabaseService",
    # Exceptions
    "DatabaseInitializationError",
    "DatabaseNotInitializedError",
]
