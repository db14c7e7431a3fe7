# backend/tutorslot/repositories/__init__.py
"""
Repository layer for the booking store.

Key Components:
- AvailabilityRepository / SessionRepository: interfaces the services depend on
- InMemory*: thread-safe in-process implementations
- Sql*: SQLAlchemy implementations with version-checked updates
- RepositoryFactory: picks an implementation

Usage:
    from tutorslot.repositories import RepositoryFactory

    sessions = RepositoryFactory.create_session_repository(session_factory)
"""

from .base_repository import AvailabilityRepository, SessionRepository
from .factory import RepositoryFactory
from .memory import InMemoryAvailabilityRepository, InMemorySessionRepository
from .sql import SqlAvailabilityRepository, SqlSessionRepository

__all__ = [
    "AvailabilityRepository",
    "SessionRepository",
    "RepositoryFactory",
    "InMemoryAvailabilityRepository",
    "InMemorySessionRepository",
    "SqlAvailabilityRepository",
    "SqlSessionRepository",
]
