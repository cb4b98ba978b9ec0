"""
Host classification tests: every input gets a classification, none raise.
"""
import uuid

import pytest

from app.crud.crud_domain import DomainSnapshot
from app.models.custom_domain import DomainStatus
from app.services.host_classifier import HostKind, classify, normalize_host

PLATFORM = "links.dalvi.cloud"
LOCAL = ["localhost", "127.0.0.1", "::1"]

SNAPSHOT = DomainSnapshot(
    id=uuid.uuid4(),
    domain="example.com",
    owner_id=uuid.uuid4(),
    status=DomainStatus.ACTIVE,
    is_primary=True,
)


def _lookup(host):
    return SNAPSHOT if host == "example.com" else None


def _classify(host, lookup=_lookup):
    return classify(host, lookup, platform_domain=PLATFORM, local_hosts=LOCAL)


@pytest.mark.parametrize("raw, expected", [
    ("Example.COM", "example.com"),
    ("example.com:8080", "example.com"),
    ("example.com.", "example.com"),
    ("  example.com ", "example.com"),
    ("[::1]:8000", "::1"),
    ("[::1]", "::1"),
    ("Stra\u00dfe.DE", "Stra\u00dfe.DE"),
    (None, ""),
    (42, ""),
])
def test_normalize_host(raw, expected):
    assert normalize_host(raw) == expected


@pytest.mark.parametrize("host", ["localhost", "LOCALHOST:8000", "127.0.0.1:3000", "[::1]:8000"])
def test_local_dev_hosts(host):
    result = _classify(host)
    assert result.kind == HostKind.LOCAL_DEV
    assert not result.is_known


@pytest.mark.parametrize("host", [PLATFORM, "LINKS.dalvi.cloud:443", "www.links.dalvi.cloud", "links.dalvi.cloud."])
def test_platform_and_subdomains(host):
    assert _classify(host).kind == HostKind.PLATFORM


def test_platform_lookalike_is_not_platform():
    result = _classify("evillinks.dalvi.cloud")
    assert result.kind == HostKind.CUSTOM_DOMAIN


def test_known_custom_domain():
    result = _classify("Example.com:443")
    assert result.kind == HostKind.CUSTOM_DOMAIN
    assert result.is_known
    assert result.domain == SNAPSHOT
    assert result.owner_id == SNAPSHOT.owner_id
    assert result.status == DomainStatus.ACTIVE


def test_unknown_custom_domain():
    result = _classify("unknown.org")
    assert result.kind == HostKind.CUSTOM_DOMAIN
    assert not result.is_known
    assert not result.lookup_failed


@pytest.mark.parametrize("host", ["", None, "   ", "bad host", "exa$mple.com", "-x.com", "a" * 300, 3.14, b"example.com"])
def test_malformed_hosts_are_unknown_custom_domains(host):
    calls = []
    result = _classify(host, lookup=lambda h: calls.append(h))
    assert result.kind == HostKind.CUSTOM_DOMAIN
    assert not result.is_known
    assert calls == []


@pytest.mark.parametrize("host", ["stra\u00dfe.de", "\u212aexample.com", "ex\u00e4mple.com"])
def test_non_ascii_hosts_never_fold_onto_ascii_domains(host):
    calls = []
    result = _classify(host, lookup=lambda h: calls.append(h))
    assert result.kind == HostKind.CUSTOM_DOMAIN
    assert result.host == host
    assert not result.is_known
    assert calls == []


def test_lookup_failure_is_reported_not_treated_as_platform():
    def _broken(host):
        raise RuntimeError("database is down")

    result = _classify("example.com", lookup=_broken)
    assert result.kind == HostKind.CUSTOM_DOMAIN
    assert result.lookup_failed
    assert not result.is_known


def test_classification_is_immutable():
    result = _classify("example.com")
    with pytest.raises(Exception):
        result.kind = HostKind.PLATFORM
