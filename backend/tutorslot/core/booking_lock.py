from __future__ import annotations

from contextlib import contextmanager
import logging
import threading
import time
from typing import Dict, Iterator, Optional
import uuid

from redis import Redis

from .config import is_running_tests, settings
from .exceptions import ServiceException

logger = logging.getLogger(__name__)

# Delete the mutex only while it still holds our token
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


def _lock_key(teacher_id: str) -> str:
    return f"teacher:{teacher_id}:mutex"


class TeacherLockManager:
    """
    Serialises booking writes per teacher.

    Each teacher gets an in-process lock. When a Redis client is supplied,
    a `SET NX EX` mutex is taken as well so several worker processes sharing
    one booking store cannot interleave their overlap re-check and write.
    Redis errors degrade to the local lock only.
    """

    def __init__(
        self,
        redis_client: Optional[Redis] = None,
        *,
        timeout_s: Optional[float] = None,
        ttl_s: Optional[int] = None,
        namespace: Optional[str] = None,
    ) -> None:
        self.redis = redis_client
        self.timeout_s = timeout_s if timeout_s is not None else settings.lock_timeout_seconds
        self.ttl_s = ttl_s if ttl_s is not None else settings.lock_ttl_seconds
        self.namespace = namespace or settings.lock_namespace
        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    @classmethod
    def from_settings(cls) -> "TeacherLockManager":
        client: Optional[Redis] = None
        if settings.redis_url and not is_running_tests():
            try:
                client = Redis.from_url(
                    settings.redis_url,
                    encoding="utf-8",
                    decode_responses=True,
                )
                client.ping()
            except Exception as exc:
                logger.warning("teacher_lock_redis_unavailable: %s", exc)
                client = None
        return cls(client)

    def _namespaced_key(self, teacher_id: str) -> str:
        return f"{self.namespace}:lock:{_lock_key(teacher_id)}"

    def _local_lock(self, teacher_id: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(teacher_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[teacher_id] = lock
            return lock

    def _acquire_redis(self, teacher_id: str, deadline: float) -> Optional[str]:
        """Take the Redis mutex; returns its owner token, or None when Redis is unusable."""
        if self.redis is None:
            return None
        key = self._namespaced_key(teacher_id)
        token = uuid.uuid4().hex
        while True:
            try:
                if self.redis.set(key, token, nx=True, ex=self.ttl_s):
                    return token
            except Exception as exc:
                logger.warning(
                    "teacher_lock_redis_acquire_failed",
                    extra={
                        "teacher_id": teacher_id,
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                    },
                )
                return None
            if time.monotonic() >= deadline:
                raise self._timeout(teacher_id)
            time.sleep(0.05)

    def _release_redis(self, teacher_id: str, token: str) -> None:
        if self.redis is None:
            return
        try:
            released = self.redis.eval(_RELEASE_SCRIPT, 1, self._namespaced_key(teacher_id), token)
            if not released:
                logger.warning(
                    "teacher_lock_redis_expired_before_release",
                    extra={"teacher_id": teacher_id, "ttl_s": self.ttl_s},
                )
        except Exception as exc:
            logger.warning(
                "teacher_lock_redis_release_failed",
                extra={
                    "teacher_id": teacher_id,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
            )

    def _timeout(self, teacher_id: str) -> ServiceException:
        return ServiceException(
            "Another booking for this teacher is in progress, please retry",
            code="LOCK_TIMEOUT",
            details={"teacher_id": teacher_id, "timeout_s": self.timeout_s},
        )

    @contextmanager
    def hold(self, teacher_id: str) -> Iterator[None]:
        """Critical section for one teacher's booking set."""
        deadline = time.monotonic() + self.timeout_s
        local = self._local_lock(teacher_id)
        if not local.acquire(timeout=self.timeout_s):
            raise self._timeout(teacher_id)
        try:
            token = self._acquire_redis(teacher_id, deadline)
            try:
                yield
            finally:
                if token is not None:
                    self._release_redis(teacher_id, token)
        finally:
            local.release()
