"""
Host routing tests through the full ASGI app
"""
from app.config import settings
from app.core.errors import UnknownDomain
from app.models.custom_domain import DomainStatus
from app.services import domain_cache, lifecycle
from app.services.domain_cache import CacheGeneration, TTLCache, invalidate_domain_cache
from app.services.lifecycle import utcnow
from tests.conftest import PLATFORM
from tests.test_domain_cache import FakeClock, SharedCounter


def _make_active(db, record, primary=True):
    record.status = DomainStatus.ACTIVE
    record.dns_verified = True
    record.is_primary = primary
    record.activated_at = utcnow()
    db.commit()
    invalidate_domain_cache()
    return record


def _host(host, **extra):
    return {"host": host, **extra}


# ── Custom domain host ──

async def test_pending_domain_redirects_to_platform_profile(web, db, alice):
    lifecycle.claim(db, alice.id, "example.com")
    resp = await web.get("/", headers=_host("example.com"))
    assert resp.status_code == 302
    assert resp.headers["location"] == f"https://{PLATFORM}/alice"


async def test_non_active_domain_keeps_method_on_redirect(web, db, alice):
    lifecycle.claim(db, alice.id, "example.com")
    resp = await web.post("/alice", headers=_host("example.com"))
    assert resp.status_code == 307


async def test_active_domain_serves_owner_profile(web, db, alice):
    [record] = lifecycle.claim(db, alice.id, "example.com")
    _make_active(db, record)

    resp = await web.get("/", headers=_host("example.com"))
    assert resp.status_code == 200
    body = resp.json()
    assert body["username"] == "alice"
    assert body["canonical_url"] == "https://example.com/alice"

    resp = await web.get("/alice", headers=_host("Example.COM:443"))
    assert resp.status_code == 200
    assert resp.json()["username"] == "alice"


async def test_active_domain_never_serves_other_profiles(web, db, alice, bob):
    [record] = lifecycle.claim(db, alice.id, "example.com")
    _make_active(db, record)

    resp = await web.get("/bob", headers=_host("example.com"))
    assert resp.status_code == 404
    assert resp.json()["code"] == "not_found"


async def test_platform_paths_on_custom_domain_go_to_platform(web, db, alice):
    [record] = lifecycle.claim(db, alice.id, "example.com")
    _make_active(db, record)

    resp = await web.get("/api/v1/domains/", headers=_host("example.com"))
    assert resp.status_code == 302
    assert resp.headers["location"] == f"https://{PLATFORM}/api/v1/domains/"


async def test_unknown_domain_is_404(web):
    resp = await web.get("/", headers=_host("nobody.org"))
    assert resp.status_code == UnknownDomain.status_code
    assert resp.json() == UnknownDomain().to_dict()


async def test_malformed_host_is_404(web):
    resp = await web.get("/", headers=_host("bad_host!"))
    assert resp.status_code == 404


async def test_lookup_failure_is_503_not_platform(web, monkeypatch):
    def broken(host):
        raise RuntimeError("database is down")

    monkeypatch.setattr("app.middleware.custom_domain.lookup_domain", broken)
    resp = await web.get("/", headers=_host("example.com"))
    assert resp.status_code == 503
    assert resp.headers["retry-after"] == "5"
    assert resp.json()["code"] == "lookup_unavailable"


async def test_http_is_upgraded_permanently(web, db, alice):
    [record] = lifecycle.claim(db, alice.id, "example.com")
    _make_active(db, record)

    resp = await web.get("/alice?x=1", headers=_host("example.com", **{"x-forwarded-proto": "http"}))
    assert resp.status_code == 301
    assert resp.headers["location"] == "https://example.com/alice?x=1"


async def test_forwarded_proto_from_untrusted_peer_is_ignored(web, db, alice, monkeypatch):
    [record] = lifecycle.claim(db, alice.id, "example.com")
    _make_active(db, record)
    monkeypatch.setattr(settings, "FORWARDED_ALLOW_IPS", "10.0.0.1")

    resp = await web.get("http://example.com/alice", headers=_host("example.com", **{"x-forwarded-proto": "https"}))
    assert resp.status_code == 301
    assert resp.headers["location"] == "https://example.com/alice"


async def test_forwarded_proto_from_trusted_proxy_is_honoured(web, db, alice):
    [record] = lifecycle.claim(db, alice.id, "example.com")
    _make_active(db, record)

    resp = await web.get("http://example.com/alice", headers=_host("example.com", **{"x-forwarded-proto": "https"}))
    assert resp.status_code == 200


async def test_www_preference_redirects_to_www(web, db):
    from tests.conftest import make_profile

    carol = make_profile(db, "carol", canonical_preference="www")
    apex, www = lifecycle.claim(db, carol.id, "example.com", include_www=True)
    _make_active(db, apex)
    _make_active(db, www, primary=False)

    resp = await web.get("/carol", headers=_host("example.com"))
    assert resp.status_code == 301
    assert resp.headers["location"] == "https://www.example.com/carol"

    resp = await web.post("/carol", headers=_host("example.com"))
    assert resp.status_code == 308

    resp = await web.get("/carol", headers=_host("www.example.com"))
    assert resp.status_code == 200


# ── Platform host ──

async def test_platform_profile_redirects_to_active_primary(web, db, alice):
    [record] = lifecycle.claim(db, alice.id, "example.com")
    _make_active(db, record)

    resp = await web.get("/alice", headers=_host(PLATFORM))
    assert resp.status_code == 302
    assert resp.headers["location"] == "https://example.com/alice"


async def test_platform_profile_served_while_domain_is_pending(web, db, alice):
    lifecycle.claim(db, alice.id, "example.com")
    resp = await web.get("/alice", headers=_host(PLATFORM))
    assert resp.status_code == 200
    assert resp.json()["canonical_url"] == f"https://{PLATFORM}/alice"


async def test_platform_api_is_never_redirected(web, db, alice):
    [record] = lifecycle.claim(db, alice.id, "example.com")
    _make_active(db, record)
    resp = await web.get("/health", headers=_host(PLATFORM))
    assert resp.status_code == 200


async def test_rejecting_domain_stops_serving_immediately(web, db, alice):
    [record] = lifecycle.claim(db, alice.id, "example.com")
    _make_active(db, record)
    assert (await web.get("/", headers=_host("example.com"))).status_code == 200

    lifecycle.reject(db, record, reason="abuse")
    resp = await web.get("/", headers=_host("example.com"))
    assert resp.status_code == 302
    assert resp.headers["location"] == f"https://{PLATFORM}/alice"

    resp = await web.get("/alice", headers=_host(PLATFORM))
    assert resp.status_code == 200


async def test_local_dev_host_passes_through(client, alice):
    resp = await client.get("/alice")
    assert resp.status_code == 200
    assert resp.json()["username"] == "alice"


async def test_reject_committed_by_another_process_stops_serving(web, db, alice, monkeypatch):
    shared = SharedCounter()
    monkeypatch.setattr(domain_cache, "_generation", CacheGeneration(redis_url="", client=shared))
    [record] = lifecycle.claim(db, alice.id, "example.com")
    _make_active(db, record)
    assert (await web.get("/", headers=_host("example.com"))).status_code == 200

    # the operator's process only bumps the shared counter; our local entries are untouched
    other_process = CacheGeneration(redis_url="", client=shared)
    monkeypatch.setattr(lifecycle, "invalidate_domain_cache", lambda **kwargs: other_process.bump())
    lifecycle.reject(db, record, reason="abuse")

    resp = await web.get("/", headers=_host("example.com"))
    assert resp.status_code == 302
    assert resp.headers["location"] == f"https://{PLATFORM}/alice"


async def test_random_hosts_do_not_grow_the_cache(web, monkeypatch):
    clock = FakeClock()
    cache = TTLCache(30, maxsize=20, clock=clock)
    monkeypatch.setattr(domain_cache, "_cache", cache)

    for i in range(50):
        resp = await web.get("/", headers=_host(f"h{i}.example.org"))
        assert resp.status_code == 404
    assert len(cache) == 20

    clock.advance(3600)
    await web.get("/", headers=_host("late.example.org"))
    assert len(cache) == 1
