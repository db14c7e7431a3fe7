# backend/tutorslot/repositories/factory.py
"""
Repository Factory

Provides centralized creation of repository instances. Without a session
factory the in-memory implementations are returned, which is what tests
and single-process tools use.
"""

from typing import Optional

from sqlalchemy.orm import sessionmaker

from .base_repository import AvailabilityRepository, SessionRepository


class RepositoryFactory:
    """
    Factory class for creating repository instances.

    Centralizes repository creation to ensure consistent initialization
    and makes it easy to swap implementations if needed.
    """

    @staticmethod
    def create_availability_repository(
        session_factory: Optional[sessionmaker] = None,
    ) -> AvailabilityRepository:
        """Create repository for weekly availability."""
        if session_factory is None:
            from .memory import InMemoryAvailabilityRepository

            return InMemoryAvailabilityRepository()

        from .sql import SqlAvailabilityRepository

        return SqlAvailabilityRepository(session_factory)

    @staticmethod
    def create_session_repository(
        session_factory: Optional[sessionmaker] = None,
    ) -> SessionRepository:
        """Create repository for session records."""
        if session_factory is None:
            from .memory import InMemorySessionRepository

            return InMemorySessionRepository()

        from .sql import SqlSessionRepository

        return SqlSessionRepository(session_factory)
