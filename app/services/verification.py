"""
DNS verification runs.

A run captures ``(id, token)``, performs the lookups without holding any
database lock, then re-reads the row under ``FOR UPDATE``. If the record was
removed in the meantime the run fails with DomainNotFound; if its token was
regenerated (or it left the checkable states) the result is discarded as
``superseded``. Either way no other record is touched.
"""
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Callable, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.config import settings
from app.core.errors import DomainError, DomainNotFound, IllegalTransition
from app.crud import crud_domain
from app.middleware.metrics import VERIFICATION_CHECKS
from app.models.custom_domain import DomainStatus
from app.services import lifecycle
from app.services.dns_verifier import DnsVerifier
from app.services.domain_cache import invalidate_domain_cache
from app.services.single_flight import LockBusy, get_lock_registry, get_single_flight
from app.services.tokens import txt_record_name

logger = logging.getLogger("linkbio.domain.verification")

OUTCOME_SUPERSEDED = "superseded"
OUTCOME_IN_PROGRESS = "in_progress"

# States a DNS check may be run in (failed is retried first, rejected never)
RUNNABLE_STATUSES = (DomainStatus.PENDING_DNS, DomainStatus.VERIFIED_DNS, DomainStatus.ACTIVE)


@dataclass
class CheckReport:
    domain_id: UUID
    domain: str
    status: DomainStatus
    outcome: str
    verified: bool = False
    dns_verified: bool = False
    error: Optional[DomainError] = None
    details: List[str] = field(default_factory=list)
    shared: bool = False

    @property
    def error_code(self) -> Optional[str]:
        return self.error.code if self.error else None

    @property
    def retryable(self) -> bool:
        return bool(self.error and self.error.retryable)


_verifier: Optional[DnsVerifier] = None


def get_verifier() -> DnsVerifier:
    global _verifier
    if _verifier is None:
        _verifier = DnsVerifier()
    return _verifier


def run_check(
    db: Session,
    domain_id: UUID,
    verifier: Optional[DnsVerifier] = None,
    *,
    source: str = "manual",
    enforce_deadline: bool = False,
    now: Optional[datetime] = None,
) -> CheckReport:
    verifier = verifier or get_verifier()
    record = crud_domain.get(db, domain_id)
    if record is None:
        raise DomainNotFound()
    if record.status not in RUNNABLE_STATUSES:
        raise IllegalTransition(f"Cannot verify a domain in state '{record.status.value}'")

    domain, token = record.domain, record.verification_token
    # end the read transaction; nothing is locked while DNS is queried
    db.commit()

    result = verifier.verify(domain, settings.platform_server_ips, txt_record_name(domain), token)

    record = crud_domain.get_for_update(db, domain_id)
    if record is None:
        db.rollback()
        logger.info("Domain %s was removed during its DNS check", domain)
        raise DomainNotFound(f"{domain} was removed while it was being verified")
    if record.verification_token != token or record.status not in RUNNABLE_STATUSES:
        status = record.status
        db.rollback()
        VERIFICATION_CHECKS.labels(outcome=OUTCOME_SUPERSEDED, source=source).inc()
        logger.info("Discarding stale DNS check for %s", domain)
        return CheckReport(domain_id, domain, status, OUTCOME_SUPERSEDED, details=list(result.details))

    error = lifecycle.record_check(db, record, result, now=now, enforce_deadline=enforce_deadline)
    db.commit()
    invalidate_domain_cache(domain=domain, owner_id=record.owner_id)
    VERIFICATION_CHECKS.labels(outcome=result.outcome.value, source=source).inc()

    return CheckReport(
        domain_id=domain_id,
        domain=domain,
        status=record.status,
        outcome=result.outcome.value,
        verified=result.verified,
        dns_verified=bool(record.dns_verified),
        error=error,
        details=list(result.details),
    )


def verify_now(db: Session, domain_id: UUID, verifier: Optional[DnsVerifier] = None) -> CheckReport:
    """Manual "verify now": joins a running in-process check for the same domain."""
    record = crud_domain.get(db, domain_id)
    if record is None:
        raise DomainNotFound()
    if record.status == DomainStatus.REJECTED:
        raise IllegalTransition("This domain was rejected; remove it before claiming it again")
    if record.status == DomainStatus.FAILED:
        lifecycle.retry(db, record)

    locks = get_lock_registry()

    def _check() -> CheckReport:
        with locks.hold(str(domain_id)):
            return run_check(db, domain_id, verifier, source="manual")

    try:
        report, shared = get_single_flight().do(domain_id, _check)
    except LockBusy:
        record = crud_domain.get(db, domain_id)
        VERIFICATION_CHECKS.labels(outcome=OUTCOME_IN_PROGRESS, source="manual").inc()
        return CheckReport(
            domain_id,
            record.domain if record else "",
            record.status if record else DomainStatus.PENDING_DNS,
            OUTCOME_IN_PROGRESS,
            dns_verified=bool(record and record.dns_verified),
        )
    if shared:
        report = replace(report, shared=True)
    return report


def check_scheduled(
    session_factory: Callable[[], Session],
    domain_id: UUID,
    verifier: Optional[DnsVerifier] = None,
    now: Optional[datetime] = None,
) -> Optional[CheckReport]:
    """Scheduler check; returns None when another caller is already on it."""
    locks = get_lock_registry()

    def _check() -> CheckReport:
        db = session_factory()
        try:
            with locks.hold(str(domain_id)):
                return run_check(
                    db, domain_id, verifier, source="scheduler", enforce_deadline=True, now=now,
                )
        finally:
            db.close()

    try:
        ran, report = get_single_flight().try_do(domain_id, _check)
    except LockBusy:
        ran, report = False, None
    if not ran:
        logger.debug("Skipping %s: check already in progress", domain_id)
    return report
