# backend/tutorslot/repositories/base_repository.py
"""
Repository interfaces for the booking store.

The services only depend on these interfaces. Two implementations ship:
in-memory (memory.py) and SQLAlchemy (sql.py). Both must honour the same
contract, in particular the atomic compare-and-set used by the booking
lifecycle to detect concurrent writers.
"""

from abc import ABC, abstractmethod
from typing import Iterable, List, Optional

from ..schemas.availability import WeeklyAvailability
from ..schemas.session import Session, SessionStatus


class AvailabilityRepository(ABC):
    """Storage for one WeeklyAvailability per teacher."""

    @abstractmethod
    def get(self, teacher_id: str) -> Optional[WeeklyAvailability]:
        """
        Retrieve a teacher's stored schedule.

        Returns:
            The schedule if one was saved, None otherwise
        """

    @abstractmethod
    def upsert(self, availability: WeeklyAvailability) -> WeeklyAvailability:
        """
        Replace (or create) the teacher's schedule as a whole.

        Raises:
            RepositoryException: If the write fails
        """

    @abstractmethod
    def compare_and_set(self, availability: WeeklyAvailability, expected_version: int) -> bool:
        """
        Atomically replace the schedule if its stored version still matches.

        `expected_version` 0 means no schedule is stored yet; the write then
        only succeeds as the first insert.

        Returns:
            True if written, False if another save got there first
        """


class SessionRepository(ABC):
    """Storage for session records keyed by id."""

    @abstractmethod
    def get(self, session_id: str) -> Optional[Session]:
        """Retrieve a session by id, or None."""

    @abstractmethod
    def upsert(self, session: Session) -> Session:
        """
        Write a session unconditionally.

        Used for brand-new records; updates of existing records go through
        compare_and_set.
        """

    @abstractmethod
    def compare_and_set(self, session: Session, expected_version: int) -> bool:
        """
        Atomically replace a stored session if its version still matches.

        Args:
            session: The new state (its `version` is stored as given)
            expected_version: Version the caller read before mutating

        Returns:
            True if written, False if the record changed in the meantime
            (or does not exist)
        """

    @abstractmethod
    def list_for_teacher(
        self, teacher_id: str, statuses: Optional[Iterable[SessionStatus]] = None
    ) -> List[Session]:
        """Sessions of a teacher ordered by start time, optionally filtered by status."""

    @abstractmethod
    def list_for_student(
        self, student_id: str, statuses: Optional[Iterable[SessionStatus]] = None
    ) -> List[Session]:
        """Sessions a student requested or is enrolled in, ordered by start time."""

    @abstractmethod
    def list_by_status(self, statuses: Iterable[SessionStatus]) -> List[Session]:
        """Sessions of every teacher in the given statuses, ordered by start time."""
