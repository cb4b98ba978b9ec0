"""
Host-based routing policy.

``decide`` is pure: it takes the request, its host classification and the
tenant's canonical settings (when a tenant is involved) and returns what the
edge should do. Guarantees:

  - a custom domain that is not ``active`` only ever redirects to the platform
  - an active custom domain only serves its own owner's profile
  - platform -> custom domain redirects happen only for an active primary
    domain, and custom -> platform redirects only for a non-active one, so the
    two directions can never bounce off each other for the same snapshot
"""
import enum
from dataclasses import dataclass
from typing import FrozenSet, Iterable, Optional
from uuid import UUID

from app.config import settings
from app.crud.crud_domain import DomainSnapshot
from app.services.domain_names import strip_www
from app.services.host_classifier import HostClassification, HostKind

SAFE_METHODS = ("GET", "HEAD")


class RouteAction(str, enum.Enum):
    PASS = "pass"                # normal platform routing
    SERVE = "serve"              # render the tenant's profile
    REDIRECT = "redirect"
    NOT_FOUND = "not_found"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class RequestInfo:
    method: str
    scheme: str
    host: str
    path: str
    query: str = ""


@dataclass(frozen=True)
class TenantRouting:
    owner_id: UUID
    username: str
    is_public: bool = True
    canonical_preference: str = "non-www"
    force_https: bool = True
    primary_domain: Optional[str] = None
    active_domains: FrozenSet[str] = frozenset()


@dataclass(frozen=True)
class RouteDecision:
    action: RouteAction
    location: Optional[str] = None
    status_code: Optional[int] = None
    owner_id: Optional[UUID] = None
    serve_path: Optional[str] = None


def first_segment(path: str) -> str:
    return path.lstrip("/").split("/", 1)[0].lower()


def redirect_status(method: str, permanent: bool) -> int:
    # 307/308 keep the method and body for non-GET requests
    if method.upper() in SAFE_METHODS:
        return 301 if permanent else 302
    return 308 if permanent else 307


def build_url(scheme: str, host: str, path: str, query: str = "") -> str:
    url = f"{scheme}://{host}/{path.lstrip('/')}"
    if query:
        url = f"{url}?{query}"
    return url


def canonical_host(host: str, tenant: TenantRouting) -> str:
    """Apply the tenant's www preference, only towards a sibling that is also live."""
    if tenant.canonical_preference == "www" and not host.startswith("www."):
        candidate = f"www.{host}"
        if candidate in tenant.active_domains:
            return candidate
    elif tenant.canonical_preference == "non-www" and host.startswith("www."):
        candidate = strip_www(host)
        if candidate in tenant.active_domains:
            return candidate
    return host


def _redirect(location: str, status_code: int, owner_id: Optional[UUID] = None) -> RouteDecision:
    return RouteDecision(RouteAction.REDIRECT, location=location, status_code=status_code, owner_id=owner_id)


def _decide_platform(
    request: RequestInfo,
    tenant: Optional[TenantRouting],
    primary: Optional[DomainSnapshot],
) -> RouteDecision:
    if tenant is None or request.method.upper() not in SAFE_METHODS:
        return RouteDecision(RouteAction.PASS)
    if primary is None or not (
        primary.is_active and primary.is_primary and primary.owner_id == tenant.owner_id
    ):
        return RouteDecision(RouteAction.PASS, owner_id=tenant.owner_id)

    scheme = "https" if tenant.force_https else request.scheme
    target = build_url(scheme, canonical_host(primary.domain, tenant), request.path, request.query)
    return _redirect(target, redirect_status(request.method, permanent=False), tenant.owner_id)


def _decide_custom(
    request: RequestInfo,
    classification: HostClassification,
    tenant: Optional[TenantRouting],
    platform_domain: str,
    platform_scheme: str,
    platform_only: FrozenSet[str],
) -> RouteDecision:
    if classification.lookup_failed:
        return RouteDecision(RouteAction.UNAVAILABLE)
    snapshot = classification.domain
    if snapshot is None:
        return RouteDecision(RouteAction.NOT_FOUND)
    if tenant is not None and tenant.owner_id != snapshot.owner_id:
        tenant = None

    if not snapshot.is_active:
        path = request.path
        if tenant is not None and first_segment(path) == "":
            path = f"/{tenant.username}"
        target = build_url(platform_scheme, platform_domain, path, request.query)
        return _redirect(target, redirect_status(request.method, permanent=False))

    if tenant is None:
        return RouteDecision(RouteAction.NOT_FOUND)

    segment = first_segment(request.path)
    if segment in platform_only:
        target = build_url(platform_scheme, platform_domain, request.path, request.query)
        return _redirect(target, redirect_status(request.method, permanent=False), tenant.owner_id)

    target_host = canonical_host(classification.host, tenant)
    target_scheme = "https" if tenant.force_https else request.scheme
    if target_host != classification.host or target_scheme != request.scheme:
        target = build_url(target_scheme, target_host, request.path, request.query)
        return _redirect(target, redirect_status(request.method, permanent=True), tenant.owner_id)

    if segment == "":
        return RouteDecision(RouteAction.SERVE, owner_id=tenant.owner_id, serve_path=f"/{tenant.username}")
    if segment == tenant.username:
        return RouteDecision(RouteAction.SERVE, owner_id=tenant.owner_id, serve_path=request.path)
    return RouteDecision(RouteAction.NOT_FOUND, owner_id=tenant.owner_id)


def decide(
    request: RequestInfo,
    classification: HostClassification,
    tenant: Optional[TenantRouting] = None,
    primary: Optional[DomainSnapshot] = None,
    *,
    platform_domain: Optional[str] = None,
    platform_scheme: Optional[str] = None,
    platform_only_paths: Optional[Iterable[str]] = None,
) -> RouteDecision:
    """Decide what to do with a request.

    ``tenant`` is the profile addressed by the request: the domain owner for a
    custom host, the profile named by the first path segment for the platform
    host. ``primary`` is the snapshot of that tenant's primary custom domain,
    read from the same cache the custom-host path uses.
    """
    if classification.kind == HostKind.LOCAL_DEV:
        return RouteDecision(RouteAction.PASS)
    if classification.kind == HostKind.PLATFORM:
        return _decide_platform(request, tenant, primary)
    return _decide_custom(
        request,
        classification,
        tenant,
        platform_domain=(platform_domain or settings.PLATFORM_DOMAIN).lower(),
        platform_scheme=platform_scheme or settings.PLATFORM_SCHEME,
        platform_only=frozenset(
            platform_only_paths if platform_only_paths is not None else settings.platform_only_paths
        ),
    )
