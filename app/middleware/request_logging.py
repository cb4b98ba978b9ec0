"""
Request Logging Middleware

- Assigns a unique request_id to every request (X-Request-ID)
- Sets the owner_id context from the bearer token, when there is one
- Logs request start & end with timing
"""

import logging
import time

from jose import JWTError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.core.security import decode_access_token
from app.logging_config import (
    generate_request_id,
    owner_id_ctx,
    request_id_ctx,
)

logger = logging.getLogger("linkbio.request")


def _extract_owner(request: Request) -> str:
    """Profile id from the JWT; auth dependencies run later, so parse the header here."""
    auth = request.headers.get("authorization", "")
    if not auth.startswith("Bearer "):
        return "-"
    try:
        payload = decode_access_token(auth[7:])
    except JWTError:
        return "-"
    return str(payload.get("sub", "-"))


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        rid = request.headers.get("x-request-id") or generate_request_id()
        request_id_ctx.set(rid)
        owner_id_ctx.set(_extract_owner(request))

        method = request.method
        path = request.url.path
        host = request.headers.get("host", "-")
        client_ip = request.client.host if request.client else "-"

        logger.info("→ %s %s%s from %s", method, host, path, client_ip)

        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            elapsed = (time.perf_counter() - start) * 1000
            logger.exception("✗ %s %s failed after %.1fms", method, path, elapsed)
            raise

        elapsed = (time.perf_counter() - start) * 1000
        response.headers["X-Request-ID"] = rid

        logger.info(
            "← %s %s %d (%.1fms)",
            method, path, response.status_code, elapsed,
        )
        return response
