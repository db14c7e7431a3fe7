# backend/tests/repositories/test_memory_repositories.py
from datetime import datetime

import pytz

from tutorslot.repositories import InMemoryAvailabilityRepository, InMemorySessionRepository
from tutorslot.schemas.availability import WeeklyAvailability
from tutorslot.schemas.session import EnrolledStudent, Session, SessionStatus


def _session(**overrides) -> Session:
    values = dict(
        teacher_id="t1",
        student_id="s1",
        course_id="c1",
        start_time=datetime(2025, 1, 13, 9, tzinfo=pytz.UTC),
        end_time=datetime(2025, 1, 13, 10, tzinfo=pytz.UTC),
        enrolled=[EnrolledStudent(student_id="s1")],
        version=1,
    )
    values.update(overrides)
    return Session(**values)


def test_returned_sessions_are_copies():
    repo = InMemorySessionRepository()
    stored = repo.upsert(_session())

    loaded = repo.get(stored.id)
    loaded.enrolled.append(EnrolledStudent(student_id="intruder"))

    assert repo.get(stored.id).enrolled_ids() == ["s1"]


def test_compare_and_set():
    repo = InMemorySessionRepository()
    stored = repo.upsert(_session())
    updated = stored.model_copy(update={"status": SessionStatus.ACCEPTED, "version": 2})

    assert repo.compare_and_set(updated, 1)
    assert not repo.compare_and_set(updated, 1)
    assert not repo.compare_and_set(_session(), 0)
    assert repo.get(stored.id).status == SessionStatus.ACCEPTED


def test_student_listing_covers_enrolled_students():
    repo = InMemorySessionRepository()
    group = repo.upsert(
        _session(
            capacity=2,
            enrolled=[EnrolledStudent(student_id="s1"), EnrolledStudent(student_id="s2")],
        )
    )

    assert [s.id for s in repo.list_for_student("s2")] == [group.id]
    assert repo.list_for_student("s3") == []


def test_availability_copies():
    repo = InMemoryAvailabilityRepository()
    repo.upsert(WeeklyAvailability(teacher_id="t1"))

    loaded = repo.get("t1")
    loaded.days.clear()

    assert len(repo.get("t1").days) == 7
    assert repo.get("t2") is None


def test_availability_compare_and_set_checks_version():
    repo = InMemoryAvailabilityRepository()

    assert repo.compare_and_set(WeeklyAvailability(teacher_id="t1", version=1), 0)
    assert not repo.compare_and_set(WeeklyAvailability(teacher_id="t1", version=1), 0)
    assert repo.compare_and_set(
        WeeklyAvailability(teacher_id="t1", timezone="Asia/Tokyo", version=2), 1
    )
    assert not repo.compare_and_set(WeeklyAvailability(teacher_id="t1", version=2), 1)
    assert repo.get("t1").timezone == "Asia/Tokyo"
