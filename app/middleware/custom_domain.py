"""
Custom Domain Routing Middleware

Classifies the Host header once per request, stores the result on
``request.state.host_classification`` and applies the routing policy:
pass through, serve the owner's profile (path rewrite), redirect, 404 or 503.
Only cached store snapshots are read here; DNS is never queried at request
time.
"""

import logging
from typing import Optional, Tuple

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, RedirectResponse, Response

from app.config import settings
from app.core.errors import DomainError, UnknownDomain
from app.crud.crud_domain import DomainSnapshot
from app.logging_config import host_ctx, owner_id_ctx
from app.middleware.metrics import ROUTING_DECISIONS
from app.services.domain_cache import lookup_domain, lookup_tenant_by_owner, lookup_tenant_by_username
from app.services.host_classifier import HostClassification, HostKind, classify
from app.services.routing_policy import (
    RequestInfo,
    RouteAction,
    RouteDecision,
    TenantRouting,
    decide,
    first_segment,
)

logger = logging.getLogger("linkbio.domain.routing")


def _from_trusted_proxy(request: Request) -> bool:
    allowed = settings.forwarded_allow_ips
    if "*" in allowed:
        return True
    return request.client is not None and request.client.host in allowed


def request_scheme(request: Request) -> str:
    """Scheme the visitor used; X-Forwarded-Proto only counts when a trusted proxy sent it."""
    forwarded = request.headers.get("x-forwarded-proto")
    if forwarded and _from_trusted_proxy(request):
        return forwarded.split(",", 1)[0].strip().lower()
    return request.url.scheme


def _resolve_tenant(
    request: Request, classification: HostClassification
) -> Tuple[Optional[TenantRouting], Optional[DomainSnapshot]]:
    """Tenant addressed by the request and, on the platform host, its primary domain snapshot."""
    if classification.kind == HostKind.CUSTOM_DOMAIN:
        if classification.domain is None:
            return None, None
        return lookup_tenant_by_owner(classification.domain.owner_id), None

    if classification.kind == HostKind.PLATFORM:
        segment = first_segment(request.url.path)
        if not segment or segment in settings.reserved_paths:
            return None, None
        tenant = lookup_tenant_by_username(segment)
        if tenant is None or not tenant.primary_domain:
            return tenant, None
        # same snapshot source the custom-domain side reads, so both agree on "active"
        return tenant, lookup_domain(tenant.primary_domain)

    return None, None


def _error(status_code: int, detail: str, code: str, headers: Optional[dict] = None) -> JSONResponse:
    return JSONResponse({"detail": detail, "code": code}, status_code=status_code, headers=headers)


def _render(error: DomainError) -> JSONResponse:
    return JSONResponse(error.to_dict(), status_code=error.status_code)


class CustomDomainMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        classification = classify(request.headers.get("host"), lookup_domain)
        request.state.host_classification = classification
        host_ctx.set(classification.host or "-")

        try:
            tenant, primary = _resolve_tenant(request, classification)
        except Exception as e:
            if classification.kind != HostKind.CUSTOM_DOMAIN:
                logger.warning("Tenant lookup failed on %s: %s", classification.host, e)
                return await call_next(request)
            logger.error("Tenant lookup failed for custom domain %s: %s", classification.host, e)
            decision = RouteDecision(RouteAction.UNAVAILABLE)
        else:
            info = RequestInfo(
                method=request.method,
                scheme=request_scheme(request),
                host=classification.host,
                path=request.url.path,
                query=request.url.query,
            )
            decision = decide(info, classification, tenant, primary)

        ROUTING_DECISIONS.labels(kind=classification.kind.value, action=decision.action.value).inc()
        if decision.owner_id is not None and classification.kind == HostKind.CUSTOM_DOMAIN:
            owner_id_ctx.set(str(decision.owner_id))

        if decision.action == RouteAction.PASS:
            return await call_next(request)

        if decision.action == RouteAction.REDIRECT:
            logger.debug("Redirect %s%s -> %s", classification.host, request.url.path, decision.location)
            return RedirectResponse(decision.location, status_code=decision.status_code)

        if decision.action == RouteAction.SERVE:
            request.scope["path"] = decision.serve_path
            request.scope["raw_path"] = decision.serve_path.encode("utf-8")
            request.state.served_owner_id = decision.owner_id
            return await call_next(request)

        if decision.action == RouteAction.UNAVAILABLE:
            return _error(503, "Domain lookup is temporarily unavailable", "lookup_unavailable", {"Retry-After": "5"})

        if classification.is_known:
            return _error(404, "Not Found", "not_found")
        return _render(UnknownDomain())
