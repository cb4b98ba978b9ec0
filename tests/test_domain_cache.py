"""
Request-time cache tests: size cap, expiry sweeps and cross-process invalidation
"""
import logging

import redis

from app.services.domain_cache import _MISSING, CacheGeneration, TTLCache


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class SharedCounter:
    """The two Redis calls the generation counter makes, over a dict several instances share."""

    def __init__(self):
        self.store = {}

    def get(self, key):
        value = self.store.get(key)
        return None if value is None else str(value).encode()

    def incr(self, key):
        self.store[key] = self.store.get(key, 0) + 1
        return self.store[key]


class DownRedis:
    def get(self, key):
        raise redis.exceptions.ConnectionError("Connection refused")

    incr = get


# ── TTLCache ──

def test_expired_entries_are_swept_on_write():
    clock = FakeClock()
    cache = TTLCache(30, maxsize=1000, clock=clock)
    for i in range(300):
        cache.set(("domain", f"h{i}.example.org"), None)
    assert len(cache) == 300

    clock.advance(3600)
    cache.set(("domain", "late.example.org"), None)
    assert len(cache) == 1


def test_cache_is_capped_and_drops_oldest_first():
    cache = TTLCache(30, maxsize=50, clock=FakeClock())
    for i in range(200):
        cache.set(i, i)

    assert len(cache) == 50
    assert cache.get(0) is _MISSING
    assert cache.get(149) is _MISSING
    assert cache.get(150) == 150
    assert cache.get(199) == 199


def test_rewritten_key_is_treated_as_newest():
    cache = TTLCache(30, maxsize=2, clock=FakeClock())
    cache.set("a", 1)
    cache.set("b", 2)
    cache.set("a", 3)
    cache.set("c", 4)

    assert cache.get("b") is _MISSING
    assert cache.get("a") == 3
    assert cache.get("c") == 4


def test_entries_expire_after_ttl():
    clock = FakeClock()
    cache = TTLCache(30, clock=clock)
    assert cache.get_or_load("k", lambda: "v1") == "v1"
    assert cache.get_or_load("k", lambda: "v2") == "v1"
    clock.advance(31)
    assert cache.get_or_load("k", lambda: "v2") == "v2"


# ── CacheGeneration ──

def test_bump_in_another_process_is_seen_once():
    shared = SharedCounter()
    api_worker = CacheGeneration(redis_url="", client=shared)
    celery_worker = CacheGeneration(redis_url="", client=shared)
    api_worker.changed()
    assert api_worker.changed() is False

    celery_worker.bump()
    assert api_worker.changed() is True
    assert api_worker.changed() is False


def test_own_bump_is_not_a_change():
    generation = CacheGeneration(redis_url="", client=SharedCounter())
    generation.changed()
    generation.bump()
    assert generation.changed() is False


def test_generation_without_redis_is_local_only():
    generation = CacheGeneration(redis_url="")
    generation.bump()
    assert generation.changed() is False


def test_redis_outage_degrades_to_local_invalidation(caplog):
    generation = CacheGeneration(redis_url="", client=DownRedis())
    with caplog.at_level(logging.WARNING, logger="linkbio.domain.cache"):
        assert generation.changed() is False
        generation.bump()
        assert generation.changed() is False

    warnings = [r for r in caplog.records if "Redis unavailable" in r.getMessage()]
    assert len(warnings) == 1
