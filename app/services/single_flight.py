"""
Single-flight execution for per-domain verification.

Two layers:
  - SingleFlight: in-process; concurrent callers for the same key join the
    call that is already running and receive its result (or exception).
  - DomainLockRegistry: cross-process; a Redis ``SET NX`` lock with expiry so
    two workers never check the same domain at the same time.
"""
import logging
import threading
from contextlib import contextmanager
from typing import Any, Callable, Dict, Hashable, Iterator, Optional, Tuple

import redis
from redis.lock import Lock

from app.config import settings

logger = logging.getLogger("linkbio.domain.single_flight")


class _Call:
    def __init__(self):
        self.done = threading.Event()
        self.value: Any = None
        self.error: Optional[BaseException] = None
        self.joiners = 0


class SingleFlight:
    def __init__(self):
        self._lock = threading.Lock()
        self._calls: Dict[Hashable, _Call] = {}

    def in_flight(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._calls

    def do(self, key: Hashable, fn: Callable[[], Any]) -> Tuple[Any, bool]:
        """Run ``fn`` once per key at a time. Returns ``(value, shared)``."""
        with self._lock:
            call = self._calls.get(key)
            if call is not None:
                call.joiners += 1
                leader = False
            else:
                call = self._calls[key] = _Call()
                leader = True

        if not leader:
            call.done.wait()
            if call.error is not None:
                raise call.error
            return call.value, True

        return self._run(key, call, fn), False

    def try_do(self, key: Hashable, fn: Callable[[], Any]) -> Tuple[bool, Any]:
        """Run ``fn`` only if nobody else is; returns ``(ran, value)``."""
        with self._lock:
            if key in self._calls:
                return False, None
            call = self._calls[key] = _Call()
        return True, self._run(key, call, fn)

    def _run(self, key: Hashable, call: _Call, fn: Callable[[], Any]) -> Any:
        try:
            call.value = fn()
            return call.value
        except BaseException as e:
            call.error = e
            raise
        finally:
            with self._lock:
                self._calls.pop(key, None)
            call.done.set()


class LockBusy(Exception):
    """Another process holds the lock for this key."""


class DomainLockRegistry:
    """Redis-backed per-key locks; without Redis only the in-process layer applies."""

    def __init__(self, redis_url: Optional[str] = None, timeout: Optional[int] = None, prefix: str = "linkbio:domain-check:"):
        self._redis_url = settings.DOMAIN_LOCK_REDIS_URL if redis_url is None else redis_url
        self.timeout = timeout if timeout is not None else settings.DOMAIN_LOCK_TIMEOUT_SECONDS
        self.prefix = prefix
        self._redis: Optional[redis.Redis] = None
        self._warned = False

    @property
    def r(self) -> Optional[redis.Redis]:
        if not self._redis_url:
            return None
        if self._redis is None:
            try:
                client = redis.Redis.from_url(
                    self._redis_url,
                    socket_connect_timeout=2,
                    socket_timeout=2,
                )
                client.ping()
            except redis.RedisError as e:
                self._lost(e)
                return None
            self._redis = client
            self._warned = False
        return self._redis

    def _lost(self, error: Exception) -> None:
        self._redis = None
        if not self._warned:
            logger.warning("Domain lock Redis unavailable (%s); using in-process locking only", error)
            self._warned = True

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        """Hold the cross-process lock for ``key`` or raise LockBusy.

        A Redis failure at any point degrades to the in-process layer; the
        next call reconnects.
        """
        lock = self._acquire(key)
        try:
            yield
        finally:
            if lock is not None:
                self._release(key, lock)

    def _acquire(self, key: str) -> Optional[Lock]:
        client = self.r
        if client is None:
            return None
        lock = client.lock(f"{self.prefix}{key}", timeout=self.timeout, blocking=False)
        try:
            acquired = lock.acquire(blocking=False)
        except redis.RedisError as e:
            self._lost(e)
            return None
        if not acquired:
            raise LockBusy(key)
        return lock

    def _release(self, key: str, lock: Lock) -> None:
        try:
            lock.release()
        except redis.exceptions.LockError:
            # expired while we were working; someone else may own it now
            logger.warning("Domain lock for %s expired before release", key)
        except redis.RedisError as e:
            self._lost(e)


_flight = SingleFlight()
_locks: Optional[DomainLockRegistry] = None


def get_single_flight() -> SingleFlight:
    return _flight


def get_lock_registry() -> DomainLockRegistry:
    global _locks
    if _locks is None:
        _locks = DomainLockRegistry()
    return _locks
