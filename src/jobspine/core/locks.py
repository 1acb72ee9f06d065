"""Distributed job locks.

Manifesto:
    The claim transaction already keeps two pollers from taking the same
    row, but execution is fenced a second time by a TTL-bounded lock in a
    shared key-value store. A holder only deletes the key if it still holds
    the token it wrote, so a worker whose lock expired cannot release the
    lock of the worker that re-acquired it.

Lock key format: ``job-lock:<job-id>``.

    Lock Backends::

        LockService (Protocol)
        ├── RedisLockService     SET key token NX PX ttl  +  Lua compare-and-delete
        └── InMemoryLockService  dict + threading.Lock (single process only)

TTL boundary:
    Locks are never renewed. ``lock_ttl_seconds`` must exceed the worst-case
    callback duration; a callback that outlives its TTL can overlap with a
    second owner.

Tags:
    jobspine, distributed-locks, redis, TTL, concurrency

Doc-Types:
    api-reference, architecture-diagram
"""

from __future__ import annotations

import threading
import time

import redis

from jobspine.core.errors import LockServiceError
from jobspine.core.logging import get_logger

logger = get_logger(__name__)

LOCK_KEY_PREFIX = "job-lock:"


def job_lock_key(job_id: str) -> str:
    """Lock key for a job id."""
    return f"{LOCK_KEY_PREFIX}{job_id}"


# Deletes KEYS[1] only when it still holds ARGV[1].
_COMPARE_AND_DELETE = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class RedisLockService:
    """Redis-backed lock service.

    Thread-safe and process-safe via Redis atomic operations.

    Example:
        >>> locks = RedisLockService.from_url("redis://localhost:6379/0")
        >>> if locks.try_acquire("job-lock:123", token, ttl_seconds=30):
        ...     try:
        ...         run_job()
        ...     finally:
        ...         locks.compare_and_delete("job-lock:123", token)
    """

    def __init__(self, client: redis.Redis) -> None:
        self._client = client
        self._release_script = client.register_script(_COMPARE_AND_DELETE)

    @classmethod
    def from_url(cls, url: str = "redis://localhost:6379/0") -> RedisLockService:
        return cls(redis.Redis.from_url(url, decode_responses=True))

    def try_acquire(self, key: str, token: str, ttl_seconds: float) -> bool:
        """Acquire *key* for *token* if absent.

        Returns:
            True if acquired, False if already held
        """
        try:
            acquired = self._client.set(key, token, nx=True, px=int(ttl_seconds * 1000))
        except redis.RedisError as e:
            raise LockServiceError(f"Lock acquire failed: {e}", cause=e).with_context(key=key)
        if acquired:
            logger.debug("lock_acquired", key=key)
            return True
        logger.debug("lock_held_elsewhere", key=key)
        return False

    def compare_and_delete(self, key: str, expected_token: str) -> bool:
        """Release *key* only if it still holds *expected_token*.

        Returns:
            True if released, False if not held (expired or re-acquired)
        """
        try:
            deleted = self._release_script(keys=[key], args=[expected_token])
        except redis.RedisError as e:
            raise LockServiceError(f"Lock release failed: {e}", cause=e).with_context(key=key)
        return bool(deleted)

    def get(self, key: str) -> str | None:
        try:
            value = self._client.get(key)
        except redis.RedisError as e:
            raise LockServiceError(f"Lock read failed: {e}", cause=e).with_context(key=key)
        if isinstance(value, bytes):
            return value.decode()
        return value

    def ping(self) -> bool:
        try:
            return bool(self._client.ping())
        except redis.RedisError:
            return False


class InMemoryLockService:
    """Single-process lock service with TTL expiry.

    Only safe when every worker lives in the same process. Used for local
    runs and tests.
    """

    def __init__(self, clock=time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, tuple[str, float]] = {}
        self._lock = threading.Lock()

    def _live_token(self, key: str) -> str | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        token, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return token

    def try_acquire(self, key: str, token: str, ttl_seconds: float) -> bool:
        with self._lock:
            if self._live_token(key) is not None:
                return False
            self._entries[key] = (token, self._clock() + ttl_seconds)
            return True

    def compare_and_delete(self, key: str, expected_token: str) -> bool:
        with self._lock:
            if self._live_token(key) != expected_token:
                return False
            del self._entries[key]
            return True

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._live_token(key)

    def active_keys(self) -> list[str]:
        """List keys whose lock has not expired."""
        with self._lock:
            return [key for key in list(self._entries) if self._live_token(key) is not None]


__all__ = [
    "LOCK_KEY_PREFIX",
    "job_lock_key",
    "RedisLockService",
    "InMemoryLockService",
]
