"""Pytest configuration and fixtures."""
import os
import uuid

# App settings are read at import time; point everything at throwaway backends first
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["DOMAIN_LOCK_REDIS_URL"] = ""
os.environ["DOMAIN_CACHE_REDIS_URL"] = ""
os.environ["DOMAIN_AUTO_ACTIVATE"] = "false"
os.environ["SECRET_KEY"] = "test-secret-key-that-is-long-enough-000"
os.environ["APP_ENV"] = "test"

import dns.exception  # noqa: E402
import dns.resolver  # noqa: E402
import pytest  # noqa: E402
import redis  # noqa: E402
from httpx import AsyncClient, ASGITransport  # noqa: E402

from app.config import settings  # noqa: E402
from app.core.security import ROLE_OPERATOR, ROLE_OWNER, create_access_token  # noqa: E402
from app.db.base_class import Base  # noqa: E402
from app.db.session import SessionLocal, engine  # noqa: E402
import app.models  # noqa: E402,F401
from app.models.custom_domain import CustomDomain  # noqa: E402
from app.models.profile import Profile  # noqa: E402
from app.services.dns_verifier import DnsVerifier  # noqa: E402
from app.services.domain_cache import invalidate_domain_cache  # noqa: E402
from app.services.single_flight import DomainLockRegistry  # noqa: E402

PLATFORM = settings.PLATFORM_DOMAIN
SERVER_IP = settings.platform_server_ips[0]


# --- Fake DNS ---

class _A:
    def __init__(self, ip):
        self.ip = ip

    def to_text(self):
        return self.ip


class _TXT:
    def __init__(self, value):
        self.strings = (value.encode(),)


class FakeResolver:
    """Stands in for dns.resolver.Resolver; ``zone`` maps (name, rdtype) to values or an exception."""

    def __init__(self, zone=None):
        self.zone = dict(zone or {})
        self.queries = []

    def set(self, name, rdtype, value):
        self.zone[(name, rdtype)] = value

    def resolve(self, name, rdtype, lifetime=None):
        self.queries.append((name, rdtype))
        value = self.zone.get((name, rdtype))
        if value is None:
            raise dns.resolver.NXDOMAIN()
        if isinstance(value, BaseException) or (isinstance(value, type) and issubclass(value, BaseException)):
            raise value
        if rdtype == "TXT":
            return [_TXT(v) for v in value]
        return [_A(v) for v in value]


def publish_records(resolver: FakeResolver, record: CustomDomain, ip: str = None, token: str = None) -> None:
    """Publish the A and TXT records a tenant would add for ``record``."""
    resolver.set(record.domain, "A", [ip or SERVER_IP])
    resolver.set(
        f"{settings.txt_record_host}.{record.domain}",
        "TXT",
        [f"{settings.txt_verify_prefix}={token or record.verification_token}"],
    )


def dropped_lock_registry() -> DomainLockRegistry:
    """Lock registry that connected once and then lost its Redis."""
    registry = DomainLockRegistry(redis_url="redis://127.0.0.1:1/0")
    registry._redis = redis.Redis.from_url("redis://127.0.0.1:1/0", socket_connect_timeout=0.2, socket_timeout=0.2)
    return registry


@pytest.fixture
def resolver():
    return FakeResolver()


@pytest.fixture
def verifier(resolver):
    return DnsVerifier(resolver=resolver, timeout=1.0)


@pytest.fixture
def patch_verifier(monkeypatch, verifier):
    """Make every code path that asks for the default verifier use the fake resolver."""
    monkeypatch.setattr("app.services.verification._verifier", verifier)
    return verifier


# --- Database ---

@pytest.fixture(autouse=True)
def prepare_database():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    invalidate_domain_cache()
    yield
    invalidate_domain_cache()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def make_profile(db, username: str, **kwargs) -> Profile:
    profile = Profile(id=uuid.uuid4(), username=username.lower(), **kwargs)
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile


@pytest.fixture
def alice(db):
    return make_profile(db, "alice", display_name="Alice")


@pytest.fixture
def bob(db):
    return make_profile(db, "bob", display_name="Bob")


# --- HTTP ---

def owner_headers(profile: Profile) -> dict:
    return {"Authorization": f"Bearer {create_access_token(profile.id, ROLE_OWNER)}"}


def operator_headers() -> dict:
    return {"Authorization": f"Bearer {create_access_token('ops', ROLE_OPERATOR)}"}


@pytest.fixture
async def client():
    """API client on a local-dev host (no custom-domain routing)."""
    from app.main import app as fastapi_app

    transport = ASGITransport(app=fastapi_app)
    async with AsyncClient(transport=transport, base_url="http://localhost") as ac:
        yield ac


@pytest.fixture
async def web():
    """Client for host-routing tests; set the Host per request."""
    from app.main import app as fastapi_app

    transport = ASGITransport(app=fastapi_app)
    async with AsyncClient(transport=transport, base_url=f"https://{PLATFORM}", follow_redirects=False) as ac:
        yield ac
