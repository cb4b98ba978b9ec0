"""
Verification scheduler.

Picks records in ``pending_dns`` / ``verified_dns`` whose backoff interval has
elapsed and checks each at most once per tick, least recently checked first.
Celery beat drives it through app.tasks.domain_tasks; ``run_forever`` is the
same loop for deployments without beat (scripts/run_scheduler.py).
"""
import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.config import settings
from app.core.errors import DomainError
from app.crud import crud_domain
from app.models.custom_domain import CustomDomain
from app.services.dns_verifier import DnsVerifier
from app.services.lifecycle import utcnow, as_utc
from app.services.verification import CheckReport, check_scheduled

logger = logging.getLogger("linkbio.domain.scheduler")

MAX_BACKOFF_EXPONENT = 16


def check_interval(attempts: int, base: Optional[int] = None, maximum: Optional[int] = None) -> timedelta:
    base = settings.DOMAIN_VERIFY_BASE_INTERVAL_SECONDS if base is None else base
    maximum = settings.DOMAIN_VERIFY_MAX_INTERVAL_SECONDS if maximum is None else maximum
    exponent = min(max(attempts or 0, 0), MAX_BACKOFF_EXPONENT)
    return timedelta(seconds=min(base * 2 ** exponent, maximum))


def is_due(record: CustomDomain, now: datetime) -> bool:
    last = as_utc(record.last_checked_at)
    if last is None:
        return True
    return now - last >= check_interval(record.verification_attempts)


def due_domain_ids(db: Session, now: datetime, limit: Optional[int] = None) -> List[UUID]:
    """Ids of records due for a check, oldest check first, at most ``limit``."""
    limit = limit or settings.DOMAIN_SCHEDULER_BATCH_SIZE
    # nothing checked more recently than the base interval can be due
    checked_before = now - check_interval(0)
    due: List[UUID] = []
    skip = 0
    while len(due) < limit:
        page = crud_domain.get_checkable(db, checked_before=checked_before, skip=skip, limit=limit)
        if not page:
            break
        due.extend(record.id for record in page if is_due(record, now))
        skip += len(page)
    return due[:limit]


class VerificationScheduler:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        verifier: Optional[DnsVerifier] = None,
        batch_size: Optional[int] = None,
        tick_seconds: Optional[float] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory
        self.verifier = verifier
        self.batch_size = batch_size or settings.DOMAIN_SCHEDULER_BATCH_SIZE
        self.tick_seconds = tick_seconds if tick_seconds is not None else settings.DOMAIN_SCHEDULER_TICK_SECONDS
        self.clock = clock

    def due(self) -> List[UUID]:
        db = self.session_factory()
        try:
            return due_domain_ids(db, self.clock(), self.batch_size)
        finally:
            db.close()

    def check(self, domain_id: UUID) -> Optional[CheckReport]:
        try:
            return check_scheduled(self.session_factory, domain_id, self.verifier, now=self.clock())
        except DomainError as e:
            # removed or moved on since it was selected
            logger.info("Scheduled check of %s skipped: %s", domain_id, e.message)
            return None

    def tick(self) -> List[CheckReport]:
        reports = []
        for domain_id in self.due():
            report = self.check(domain_id)
            if report is not None:
                reports.append(report)
        if reports:
            logger.info(
                "Scheduler tick: %d checked, %d verified",
                len(reports), sum(1 for r in reports if r.verified),
            )
        return reports

    def run_forever(self, stop_event: Optional[threading.Event] = None) -> None:
        stop_event = stop_event or threading.Event()
        logger.info("Verification scheduler started (tick=%ss batch=%d)", self.tick_seconds, self.batch_size)
        while not stop_event.is_set():
            try:
                self.tick()
            except Exception:
                logger.exception("Scheduler tick failed")
            stop_event.wait(self.tick_seconds)
        logger.info("Verification scheduler stopped")
