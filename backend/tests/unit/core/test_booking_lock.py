# backend/tests/unit/core/test_booking_lock.py
"""Per-teacher critical sections, with and without the Redis mutex."""

import threading
import time
from unittest.mock import MagicMock

import pytest

from tutorslot.core.booking_lock import TeacherLockManager
from tutorslot.core.exceptions import ServiceException


def test_same_teacher_is_serialised():
    manager = TeacherLockManager(timeout_s=2.0, ttl_s=5, namespace="test")
    inside = []
    overlaps = []

    def worker():
        with manager.hold("t1"):
            inside.append(1)
            if len(inside) > 1:
                overlaps.append(True)
            time.sleep(0.02)
            inside.pop()

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=5)

    assert overlaps == []


def test_other_teachers_are_not_blocked():
    manager = TeacherLockManager(timeout_s=0.1, ttl_s=5, namespace="test")

    with manager.hold("t1"):
        with manager.hold("t2"):
            pass


def test_timeout_raises_service_exception():
    manager = TeacherLockManager(timeout_s=0.05, ttl_s=5, namespace="test")
    release = threading.Event()
    held = threading.Event()

    def holder():
        with manager.hold("t1"):
            held.set()
            release.wait(timeout=5)

    thread = threading.Thread(target=holder)
    thread.start()
    held.wait(timeout=5)
    try:
        with pytest.raises(ServiceException) as exc_info:
            with manager.hold("t1"):
                pass
    finally:
        release.set()
        thread.join(timeout=5)

    assert exc_info.value.code == "LOCK_TIMEOUT"


def test_lock_is_released_after_error():
    manager = TeacherLockManager(timeout_s=0.1, ttl_s=5, namespace="test")

    with pytest.raises(RuntimeError):
        with manager.hold("t1"):
            raise RuntimeError("boom")

    with manager.hold("t1"):
        pass


def test_redis_mutex_taken_and_released():
    redis_client = MagicMock()
    redis_client.set.return_value = True
    manager = TeacherLockManager(redis_client, timeout_s=1.0, ttl_s=30, namespace="tutorslot")

    with manager.hold("t1"):
        pass

    key = "tutorslot:lock:teacher:t1:mutex"
    args, kwargs = redis_client.set.call_args
    assert args[0] == key
    assert kwargs == {"nx": True, "ex": 30}
    token = args[1]
    script, numkeys, eval_key, eval_token = redis_client.eval.call_args[0]
    assert 'redis.call("get", KEYS[1]) == ARGV[1]' in script
    assert (numkeys, eval_key, eval_token) == (1, key, token)
    redis_client.delete.assert_not_called()


def test_each_hold_uses_a_fresh_token():
    redis_client = MagicMock()
    redis_client.set.return_value = True
    manager = TeacherLockManager(redis_client, timeout_s=1.0, ttl_s=30, namespace="test")

    with manager.hold("t1"):
        pass
    with manager.hold("t1"):
        pass

    first, second = [call.args[1] for call in redis_client.set.call_args_list]
    assert first != second


def test_expired_mutex_of_another_worker_is_left_alone():
    # TTL ran out mid-section and another worker now owns the key
    redis_client = MagicMock()
    redis_client.set.return_value = True
    redis_client.eval.return_value = 0
    manager = TeacherLockManager(redis_client, timeout_s=1.0, ttl_s=1, namespace="test")

    with manager.hold("t1"):
        pass

    redis_client.eval.assert_called_once()
    redis_client.delete.assert_not_called()


def test_redis_error_degrades_to_local_lock():
    redis_client = MagicMock()
    redis_client.set.side_effect = ConnectionError("redis down")
    manager = TeacherLockManager(redis_client, timeout_s=1.0, ttl_s=30, namespace="test")

    with manager.hold("t1"):
        pass

    redis_client.eval.assert_not_called()


def test_busy_redis_mutex_times_out():
    redis_client = MagicMock()
    redis_client.set.return_value = False
    manager = TeacherLockManager(redis_client, timeout_s=0.1, ttl_s=30, namespace="test")

    with pytest.raises(ServiceException):
        with manager.hold("t1"):
            pass

    # The local lock must not leak after the timeout
    redis_client.set.return_value = True
    with manager.hold("t1"):
        pass


def test_from_settings_skips_redis_under_pytest(monkeypatch):
    from tutorslot.core import booking_lock

    monkeypatch.setattr(booking_lock.settings, "redis_url", "redis://localhost:6379/0")

    manager = TeacherLockManager.from_settings()

    assert manager.redis is None
