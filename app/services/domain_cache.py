"""
Request-time domain and tenant lookups.

Request handling never talks to DNS and only reads the store through this
module. Results (including misses) are kept for DOMAIN_CACHE_TTL_SECONDS and
dropped by the lifecycle on every mutation. Store errors propagate and are
never cached.

Every process keeps its own entries. A commit in any process (API worker,
Celery worker, scheduler) bumps a generation counter in Redis; the other
processes compare it on their next lookup and drop everything they hold.
"""
import logging
import threading
import time
from typing import Any, Callable, Dict, Hashable, Optional, Tuple
from uuid import UUID

import redis

from app.config import settings
from app.crud import crud_domain, crud_profile
from app.crud.crud_domain import DomainSnapshot
from app.db.session import SessionLocal
from app.services.routing_policy import TenantRouting

logger = logging.getLogger("linkbio.domain.cache")

_MISSING = object()


class TTLCache:
    """Small thread-safe TTL map; workers share it between requests.

    Keys come from Host headers, so the map is capped at ``maxsize``: expired
    entries are swept once per TTL and, when still full, the oldest entries go.
    """

    def __init__(self, ttl_seconds: float, maxsize: int = 10_000, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl_seconds
        self.maxsize = maxsize
        self._clock = clock
        self._lock = threading.Lock()
        self._data: Dict[Hashable, Tuple[float, Any]] = {}
        self._next_sweep = clock() + ttl_seconds

    def __len__(self) -> int:
        return len(self._data)

    def get(self, key: Hashable) -> Any:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return _MISSING
            expires, value = entry
            if expires <= self._clock():
                del self._data[key]
                return _MISSING
            return value

    def set(self, key: Hashable, value: Any) -> None:
        with self._lock:
            now = self._clock()
            if now >= self._next_sweep or len(self._data) >= self.maxsize:
                self._sweep(now)
            self._data.pop(key, None)
            while self._data and len(self._data) >= self.maxsize:
                del self._data[next(iter(self._data))]
            self._data[key] = (now + self.ttl, value)

    def _sweep(self, now: float) -> None:
        for key in [k for k, (expires, _) in self._data.items() if expires <= now]:
            del self._data[key]
        self._next_sweep = now + self.ttl

    def get_or_load(self, key: Hashable, loader: Callable[[], Any]) -> Any:
        value = self.get(key)
        if value is _MISSING:
            value = loader()
            if self.ttl > 0 and self.maxsize > 0:
                self.set(key, value)
        return value

    def discard_where(self, predicate: Callable[[Hashable, Any], bool]) -> int:
        with self._lock:
            doomed = [k for k, (_, v) in self._data.items() if predicate(k, v)]
            for key in doomed:
                del self._data[key]
            return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()


class CacheGeneration:
    """Invalidation counter shared through Redis; without Redis only local invalidation applies."""

    KEY = "linkbio:domain-cache:generation"
    RECONNECT_SECONDS = 5.0

    def __init__(
        self,
        redis_url: Optional[str] = None,
        client: Optional[redis.Redis] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._redis_url = settings.DOMAIN_CACHE_REDIS_URL if redis_url is None else redis_url
        self._redis = client
        self._clock = clock
        self._lock = threading.Lock()
        self._seen: Optional[int] = None
        self._retry_at = 0.0
        self._warned = False

    @property
    def r(self) -> Optional[redis.Redis]:
        if self._redis is not None:
            return self._redis
        if not self._redis_url or self._clock() < self._retry_at:
            return None
        try:
            client = redis.Redis.from_url(self._redis_url, socket_connect_timeout=1, socket_timeout=1)
            client.ping()
        except redis.RedisError as e:
            self._lost(e)
            return None
        self._redis = client
        self._warned = False
        return client

    def _lost(self, error: Exception) -> None:
        self._redis = None
        self._retry_at = self._clock() + self.RECONNECT_SECONDS
        if not self._warned:
            logger.warning("Cache invalidation Redis unavailable (%s); other processes may serve stale entries", error)
            self._warned = True

    def changed(self) -> bool:
        """True when the shared counter moved since this process last looked."""
        client = self.r
        if client is None:
            return False
        try:
            current = int(client.get(self.KEY) or 0)
        except redis.RedisError as e:
            self._lost(e)
            return False
        with self._lock:
            changed = current != self._seen
            self._seen = current
        return changed

    def bump(self) -> None:
        client = self.r
        if client is None:
            return
        try:
            current = int(client.incr(self.KEY))
        except redis.RedisError as e:
            self._lost(e)
            return
        with self._lock:
            # our own bump; anything in between belongs to another process
            if self._seen is not None and current == self._seen + 1:
                self._seen = current


_cache = TTLCache(settings.DOMAIN_CACHE_TTL_SECONDS, maxsize=settings.DOMAIN_CACHE_MAX_ENTRIES)
_generation = CacheGeneration()


def _cached(key: Hashable, loader: Callable[[], Any]) -> Any:
    if _generation.changed():
        _cache.clear()
    return _cache.get_or_load(key, loader)


def _load_domain(host: str) -> Optional[DomainSnapshot]:
    db = SessionLocal()
    try:
        record = crud_domain.get_by_domain(db, host)
        return crud_domain.to_snapshot(record) if record else None
    finally:
        db.close()


def _tenant_from_profile(db, profile) -> TenantRouting:
    primary = crud_domain.get_active_primary(db, profile.id)
    return TenantRouting(
        owner_id=profile.id,
        username=profile.username,
        is_public=bool(profile.is_public),
        canonical_preference=profile.canonical_preference or "non-www",
        force_https=bool(profile.force_https),
        primary_domain=primary.domain if primary else None,
        active_domains=frozenset(crud_domain.get_active_domain_names(db, profile.id)),
    )


def _load_tenant(owner_id: Optional[UUID] = None, username: Optional[str] = None) -> Optional[TenantRouting]:
    db = SessionLocal()
    try:
        if owner_id is not None:
            profile = crud_profile.get(db, owner_id)
        else:
            profile = crud_profile.get_by_username(db, username)
        return _tenant_from_profile(db, profile) if profile else None
    finally:
        db.close()


def lookup_domain(host: str) -> Optional[DomainSnapshot]:
    """Snapshot of the record for ``host`` (already normalized), or None."""
    return _cached(("domain", host), lambda: _load_domain(host))


def lookup_tenant_by_owner(owner_id: UUID) -> Optional[TenantRouting]:
    return _cached(("owner", owner_id), lambda: _load_tenant(owner_id=owner_id))


def lookup_tenant_by_username(username: str) -> Optional[TenantRouting]:
    username = username.lower()
    return _cached(("username", username), lambda: _load_tenant(username=username))


def invalidate_domain_cache(domain: Optional[str] = None, owner_id: Optional[UUID] = None) -> None:
    """Drop cached entries for a domain and/or an owner; no arguments clears everything.

    Other processes drop their whole cache on their next lookup.
    """
    _generation.bump()
    if domain is None and owner_id is None:
        _cache.clear()
        return

    def _matches(key, value) -> bool:
        kind, ident = key
        if kind == "domain":
            if ident == domain:
                return True
            return owner_id is not None and value is not None and value.owner_id == owner_id
        if owner_id is None:
            return False
        if kind == "owner":
            return ident == owner_id
        return value is not None and value.owner_id == owner_id

    dropped = _cache.discard_where(_matches)
    logger.debug("Invalidated %d cache entries (domain=%s owner=%s)", dropped, domain, owner_id)
