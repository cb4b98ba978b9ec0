"""
Routing policy tests (pure, no database)
"""
import uuid

import pytest

from app.crud.crud_domain import DomainSnapshot
from app.models.custom_domain import DomainStatus
from app.services.host_classifier import HostClassification, HostKind
from app.services.routing_policy import (
    RequestInfo,
    RouteAction,
    TenantRouting,
    build_url,
    canonical_host,
    decide,
    redirect_status,
)

PLATFORM = "links.dalvi.cloud"
OWNER = uuid.uuid4()
OTHER = uuid.uuid4()


def _snapshot(domain="example.com", status=DomainStatus.ACTIVE, owner=OWNER, primary=False):
    return DomainSnapshot(id=uuid.uuid4(), domain=domain, owner_id=owner, status=status, is_primary=primary)


def _tenant(**kwargs):
    defaults = dict(
        owner_id=OWNER,
        username="alice",
        canonical_preference="non-www",
        force_https=True,
        primary_domain=None,
        active_domains=frozenset({"example.com"}),
    )
    defaults.update(kwargs)
    return TenantRouting(**defaults)


def _custom(host, snapshot=None, lookup_failed=False):
    return HostClassification(HostKind.CUSTOM_DOMAIN, host, domain=snapshot, lookup_failed=lookup_failed)


def _req(host, path="/", method="GET", scheme="https", query=""):
    return RequestInfo(method=method, scheme=scheme, host=host, path=path, query=query)


def _decide(request, classification, tenant=None, primary=None):
    return decide(
        request,
        classification,
        tenant,
        primary,
        platform_domain=PLATFORM,
        platform_scheme="https",
        platform_only_paths=["api", "dashboard", "admin", "auth"],
    )


# ── helpers ──

@pytest.mark.parametrize("method, permanent, expected", [
    ("GET", True, 301), ("HEAD", True, 301), ("GET", False, 302),
    ("POST", True, 308), ("PUT", False, 307), ("delete", False, 307),
])
def test_redirect_status(method, permanent, expected):
    assert redirect_status(method, permanent) == expected


def test_build_url_never_emits_protocol_relative_paths():
    assert build_url("https", "example.com", "//evil.com/x") == "https://example.com/evil.com/x"
    assert build_url("https", "example.com", "/a", "b=1") == "https://example.com/a?b=1"


def test_canonical_host_only_moves_to_live_sibling():
    both = _tenant(active_domains=frozenset({"example.com", "www.example.com"}))
    assert canonical_host("www.example.com", both) == "example.com"
    assert canonical_host("example.com", _tenant(canonical_preference="www", active_domains=both.active_domains)) == "www.example.com"
    assert canonical_host("www.example.com", _tenant(active_domains=frozenset({"www.example.com"}))) == "www.example.com"
    assert canonical_host("www.example.com", _tenant(canonical_preference="auto", active_domains=both.active_domains)) == "www.example.com"


# ── local / platform ──

def test_local_dev_passes():
    decision = _decide(_req("localhost"), HostClassification(HostKind.LOCAL_DEV, "localhost"))
    assert decision.action == RouteAction.PASS


def test_platform_without_tenant_passes():
    decision = _decide(_req(PLATFORM, "/api/v1/domains"), HostClassification(HostKind.PLATFORM, PLATFORM))
    assert decision.action == RouteAction.PASS


def test_platform_redirects_to_active_primary():
    primary = _snapshot(primary=True)
    tenant = _tenant(primary_domain="example.com")
    decision = _decide(
        _req(PLATFORM, "/alice", query="ref=ig"),
        HostClassification(HostKind.PLATFORM, PLATFORM),
        tenant,
        primary,
    )
    assert decision.action == RouteAction.REDIRECT
    assert decision.status_code == 302
    assert decision.location == "https://example.com/alice?ref=ig"


@pytest.mark.parametrize("primary", [
    None,
    _snapshot(primary=False),
    _snapshot(primary=True, status=DomainStatus.VERIFIED_DNS),
    _snapshot(primary=True, owner=OTHER),
])
def test_platform_does_not_redirect_without_a_live_primary(primary):
    decision = _decide(
        _req(PLATFORM, "/alice"),
        HostClassification(HostKind.PLATFORM, PLATFORM),
        _tenant(primary_domain="example.com"),
        primary,
    )
    assert decision.action == RouteAction.PASS


def test_platform_post_is_never_redirected():
    decision = _decide(
        _req(PLATFORM, "/alice", method="POST"),
        HostClassification(HostKind.PLATFORM, PLATFORM),
        _tenant(primary_domain="example.com"),
        _snapshot(primary=True),
    )
    assert decision.action == RouteAction.PASS


# ── custom domains ──

def test_unknown_custom_domain_is_not_found():
    decision = _decide(_req("nobody.org"), _custom("nobody.org"))
    assert decision.action == RouteAction.NOT_FOUND


def test_lookup_failure_is_unavailable():
    decision = _decide(_req("example.com"), _custom("example.com", lookup_failed=True))
    assert decision.action == RouteAction.UNAVAILABLE


@pytest.mark.parametrize("status", [
    DomainStatus.PENDING_DNS, DomainStatus.VERIFIED_DNS, DomainStatus.FAILED, DomainStatus.REJECTED,
])
def test_non_active_domain_only_redirects_to_platform(status):
    snapshot = _snapshot(status=status)
    root = _decide(_req("example.com", "/"), _custom("example.com", snapshot), _tenant())
    assert root.action == RouteAction.REDIRECT
    assert root.status_code == 302
    assert root.location == f"https://{PLATFORM}/alice"

    deep = _decide(_req("example.com", "/alice", method="POST", query="a=1"), _custom("example.com", snapshot), _tenant())
    assert deep.action == RouteAction.REDIRECT
    assert deep.status_code == 307
    assert deep.location == f"https://{PLATFORM}/alice?a=1"


def test_active_domain_serves_owner_profile_at_root():
    decision = _decide(_req("example.com", "/"), _custom("example.com", _snapshot()), _tenant())
    assert decision.action == RouteAction.SERVE
    assert decision.serve_path == "/alice"
    assert decision.owner_id == OWNER


def test_active_domain_serves_owner_path():
    decision = _decide(_req("example.com", "/alice"), _custom("example.com", _snapshot()), _tenant())
    assert decision.action == RouteAction.SERVE
    assert decision.serve_path == "/alice"


def test_active_domain_never_serves_another_tenant():
    decision = _decide(_req("example.com", "/bob"), _custom("example.com", _snapshot()), _tenant())
    assert decision.action == RouteAction.NOT_FOUND


def test_tenant_of_another_owner_is_ignored():
    decision = _decide(_req("example.com", "/"), _custom("example.com", _snapshot()), _tenant(owner_id=OTHER))
    assert decision.action == RouteAction.NOT_FOUND


def test_platform_only_paths_go_to_platform():
    decision = _decide(_req("example.com", "/dashboard/links"), _custom("example.com", _snapshot()), _tenant())
    assert decision.action == RouteAction.REDIRECT
    assert decision.location == f"https://{PLATFORM}/dashboard/links"


def test_force_https_redirects_permanently():
    decision = _decide(_req("example.com", "/alice", scheme="http"), _custom("example.com", _snapshot()), _tenant())
    assert decision.action == RouteAction.REDIRECT
    assert decision.status_code == 301
    assert decision.location == "https://example.com/alice"


def test_http_allowed_without_force_https():
    decision = _decide(
        _req("example.com", "/", scheme="http"),
        _custom("example.com", _snapshot()),
        _tenant(force_https=False),
    )
    assert decision.action == RouteAction.SERVE


def test_www_preference_redirects_once_to_canonical_host():
    both = frozenset({"example.com", "www.example.com"})
    tenant = _tenant(canonical_preference="www", active_domains=both)
    first = _decide(_req("example.com", "/alice", method="PUT"), _custom("example.com", _snapshot()), tenant)
    assert first.action == RouteAction.REDIRECT
    assert first.status_code == 308
    assert first.location == "https://www.example.com/alice"

    second = _decide(
        _req("www.example.com", "/alice"),
        _custom("www.example.com", _snapshot(domain="www.example.com")),
        tenant,
    )
    assert second.action == RouteAction.SERVE


def test_no_redirect_loop_between_platform_and_custom_domain():
    """Follow redirects for every status; no chain may revisit a URL."""
    for status in DomainStatus:
        snapshot = _snapshot(status=status, primary=status == DomainStatus.ACTIVE)
        tenant = _tenant(primary_domain="example.com" if snapshot.is_active else None)
        seen = set()
        host, path = PLATFORM, "/alice"
        for _ in range(5):
            if host == PLATFORM:
                decision = _decide(_req(host, path), HostClassification(HostKind.PLATFORM, host), tenant, snapshot)
            else:
                decision = _decide(_req(host, path), _custom(host, snapshot), tenant)
            if decision.action != RouteAction.REDIRECT:
                break
            assert decision.location not in seen
            seen.add(decision.location)
            host, path = decision.location.split("://", 1)[1].split("/", 1)
            path = "/" + path
        else:
            pytest.fail(f"redirect chain did not terminate for {status}")
