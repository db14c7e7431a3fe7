"""
In-process repositories.

Thread-safe dictionaries holding deep copies, so callers can never mutate
stored state in place.
"""

import threading
from typing import Dict, Iterable, List, Optional

from ..schemas.availability import WeeklyAvailability
from ..schemas.session import Session, SessionStatus
from .base_repository import AvailabilityRepository, SessionRepository


class InMemoryAvailabilityRepository(AvailabilityRepository):
    def __init__(self) -> None:
        self._items: Dict[str, WeeklyAvailability] = {}
        self._lock = threading.RLock()

    def get(self, teacher_id: str) -> Optional[WeeklyAvailability]:
        with self._lock:
            stored = self._items.get(teacher_id)
            return stored.model_copy(deep=True) if stored is not None else None

    def upsert(self, availability: WeeklyAvailability) -> WeeklyAvailability:
        with self._lock:
            self._items[availability.teacher_id] = availability.model_copy(deep=True)
            return availability.model_copy(deep=True)

    def compare_and_set(self, availability: WeeklyAvailability, expected_version: int) -> bool:
        with self._lock:
            current = self._items.get(availability.teacher_id)
            current_version = current.version if current is not None else 0
            if current_version != expected_version:
                return False
            self._items[availability.teacher_id] = availability.model_copy(deep=True)
            return True


class InMemorySessionRepository(SessionRepository):
    def __init__(self) -> None:
        self._items: Dict[str, Session] = {}
        self._lock = threading.RLock()

    def get(self, session_id: str) -> Optional[Session]:
        with self._lock:
            stored = self._items.get(session_id)
            return stored.model_copy(deep=True) if stored is not None else None

    def upsert(self, session: Session) -> Session:
        with self._lock:
            self._items[session.id] = session.model_copy(deep=True)
            return session.model_copy(deep=True)

    def compare_and_set(self, session: Session, expected_version: int) -> bool:
        with self._lock:
            current = self._items.get(session.id)
            if current is None or current.version != expected_version:
                return False
            self._items[session.id] = session.model_copy(deep=True)
            return True

    def _select(self, predicate, statuses: Optional[Iterable[SessionStatus]]) -> List[Session]:
        wanted = set(statuses) if statuses is not None else None
        with self._lock:
            matches = [
                item.model_copy(deep=True)
                for item in self._items.values()
                if predicate(item) and (wanted is None or item.status in wanted)
            ]
        matches.sort(key=lambda item: (item.start_time, item.created_at))
        return matches

    def list_for_teacher(
        self, teacher_id: str, statuses: Optional[Iterable[SessionStatus]] = None
    ) -> List[Session]:
        return self._select(lambda item: item.teacher_id == teacher_id, statuses)

    def list_for_student(
        self, student_id: str, statuses: Optional[Iterable[SessionStatus]] = None
    ) -> List[Session]:
        return self._select(
            lambda item: item.student_id == student_id or student_id in item.enrolled_ids(),
            statuses,
        )

    def list_by_status(self, statuses: Iterable[SessionStatus]) -> List[Session]:
        return self._select(lambda item: True, statuses)
