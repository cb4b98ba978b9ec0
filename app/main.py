from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import settings
from app.api.v1.api import api_router
from app.api.v1.endpoints import public
from app.core.errors import DomainError
from app.db.session import get_pool_status
from app.middleware.request_logging import RequestLoggingMiddleware
from app.middleware.metrics import PrometheusMiddleware, metrics_endpoint, set_app_info
from app.middleware.custom_domain import CustomDomainMiddleware
from app.logging_config import setup_logging

# ── Initialize structured logging ──
setup_logging()

app = FastAPI(
    title=settings.APP_NAME,
    openapi_url=f"{settings.API_V1_STR}/openapi.json"
)

# Set all CORS enabled origins
cors_origins = ["http://localhost:3000", "http://localhost:8000"]
if settings.BACKEND_CORS_ORIGINS:
    cors_origins.extend([origin.strip() for origin in settings.BACKEND_CORS_ORIGINS.split(",") if origin.strip()])

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Custom domain routing – classify Host, then serve / redirect / 404 / 503
app.add_middleware(CustomDomainMiddleware)

# Prometheus metrics middleware – request count, latency, in-progress
app.add_middleware(PrometheusMiddleware)

# Request logging middleware – request ID, timing, context (outermost)
app.add_middleware(RequestLoggingMiddleware)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Mount API v1
app.include_router(api_router, prefix=settings.API_V1_STR)


@app.get("/")
def root():
    return {"message": f"Welcome to {settings.APP_NAME}", "docs": "/docs"}


@app.get("/health")
def health_check():
    return {"status": "ok", "env": settings.APP_ENV, "db": get_pool_status()}


# Prometheus metrics endpoint
app.add_route("/metrics", metrics_endpoint)
set_app_info(version="1.0.0", env=settings.APP_ENV)

# Public profiles last: /{username} would otherwise shadow the routes above
app.include_router(public.router, tags=["public"])
