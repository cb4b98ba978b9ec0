"""
Database session and connection pool setup.

Pool parameters (Postgres only):
- pool_size: persistent connections (default 10, fits a 4-worker uvicorn)
- max_overflow: extra connections allowed at peak
- pool_timeout: max seconds to wait for a connection
- pool_recycle: recycle period so idle connections are not dropped by Postgres
- pool_pre_ping: liveness check before handing out a connection

SQLite (tests / local dev) uses a single shared connection.
"""

import logging
import time
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from app.config import settings

logger = logging.getLogger("linkbio.db")

# ---------------------------------------------------------------------------
# Pool tuning
# ---------------------------------------------------------------------------
POOL_SIZE = int(getattr(settings, "DB_POOL_SIZE", 10))
MAX_OVERFLOW = int(getattr(settings, "DB_MAX_OVERFLOW", 20))
POOL_TIMEOUT = int(getattr(settings, "DB_POOL_TIMEOUT", 30))
POOL_RECYCLE = int(getattr(settings, "DB_POOL_RECYCLE", 1800))  # 30 min

# Slow query threshold (ms)
SLOW_QUERY_THRESHOLD_MS = int(getattr(settings, "SLOW_QUERY_THRESHOLD_MS", 500))

DATABASE_URI = settings.SQLALCHEMY_DATABASE_URI
IS_SQLITE = DATABASE_URI.startswith("sqlite")

if IS_SQLITE:
    engine = create_engine(
        DATABASE_URI,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
else:
    engine = create_engine(
        DATABASE_URI,
        pool_pre_ping=True,
        pool_size=POOL_SIZE,
        max_overflow=MAX_OVERFLOW,
        pool_timeout=POOL_TIMEOUT,
        pool_recycle=POOL_RECYCLE,
        echo=getattr(settings, "DB_ECHO", False),
    )


# ---------------------------------------------------------------------------
# Slow query monitoring
# ---------------------------------------------------------------------------
@event.listens_for(engine, "before_cursor_execute")
def _before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    conn.info.setdefault("query_start_time", []).append(time.perf_counter())


@event.listens_for(engine, "after_cursor_execute")
def _after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    total_ms = (time.perf_counter() - conn.info["query_start_time"].pop()) * 1000

    if total_ms >= SLOW_QUERY_THRESHOLD_MS:
        # Truncate long SQL so a single statement cannot flood the log
        stmt_preview = statement[:500] + "..." if len(statement) > 500 else statement
        logger.warning(
            "Slow query detected",
            extra={
                "duration_ms": round(total_ms, 2),
                "statement": stmt_preview,
                "threshold_ms": SLOW_QUERY_THRESHOLD_MS,
            },
        )


if not IS_SQLITE:
    @event.listens_for(engine, "checkout")
    def _on_checkout(dbapi_conn, connection_rec, connection_proxy):
        pool = engine.pool
        logger.debug(
            "DB pool checkout",
            extra={
                "pool_size": pool.size(),
                "checked_in": pool.checkedin(),
                "checked_out": pool.checkedout(),
                "overflow": pool.overflow(),
            },
        )


SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_pool_status() -> dict:
    """Connection pool status for the health endpoint."""
    if IS_SQLITE:
        return {"driver": "sqlite"}
    pool = engine.pool
    return {
        "pool_size": pool.size(),
        "checked_in": pool.checkedin(),
        "checked_out": pool.checkedout(),
        "overflow": pool.overflow(),
        "max_overflow": MAX_OVERFLOW,
        "pool_timeout": POOL_TIMEOUT,
        "pool_recycle": POOL_RECYCLE,
    }
