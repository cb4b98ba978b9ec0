"""
Custom domain lifecycle

    (none) --claim--> pending_dns --dns_verified--> verified_dns --activate--> active
    pending_dns / verified_dns --verification_timed_out--> failed --retry--> pending_dns
    active / verified_dns / failed --reject--> rejected        (absorbing)
    anything but rejected --regenerate_token--> pending_dns

All transition legality lives in TRANSITIONS. ``_apply`` is the only place a
record's status is written; it also drops ``is_primary`` whenever a record
leaves ``active``.

Operations that change data commit and then invalidate the request-time cache.
``record_check`` is the exception: it runs inside the caller's row lock and the
caller commits.
"""
import enum
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from app.config import settings
from app.core.errors import (
    DnsNotYetPropagated,
    DomainAlreadyClaimed,
    DomainError,
    IllegalTransition,
    PrimaryConflict,
    ResolverUnavailable,
    TokenMismatch,
    VerificationTimedOut,
)
from app.crud import crud_domain
from app.middleware.metrics import STATUS_TRANSITIONS
from app.models.custom_domain import CustomDomain, DomainStatus
from app.services.dns_verifier import CheckOutcome, DnsCheckResult
from app.services.domain_cache import invalidate_domain_cache
from app.services.domain_names import is_apex, normalize_domain, www_variant
from app.services.tokens import generate_verification_token

logger = logging.getLogger("linkbio.domain.lifecycle")


class DomainEvent(str, enum.Enum):
    CLAIM = "claim"
    DNS_VERIFIED = "dns_verified"
    VERIFICATION_TIMED_OUT = "verification_timed_out"
    ACTIVATE = "activate"
    REJECT = "reject"
    RETRY = "retry"
    REGENERATE_TOKEN = "regenerate_token"


S = DomainStatus
E = DomainEvent

TRANSITIONS: Dict[Tuple[Optional[DomainStatus], DomainEvent], DomainStatus] = {
    (None, E.CLAIM): S.PENDING_DNS,
    (S.PENDING_DNS, E.DNS_VERIFIED): S.VERIFIED_DNS,
    (S.PENDING_DNS, E.VERIFICATION_TIMED_OUT): S.FAILED,
    (S.VERIFIED_DNS, E.VERIFICATION_TIMED_OUT): S.FAILED,
    (S.VERIFIED_DNS, E.ACTIVATE): S.ACTIVE,
    (S.ACTIVE, E.REJECT): S.REJECTED,
    (S.VERIFIED_DNS, E.REJECT): S.REJECTED,
    (S.FAILED, E.REJECT): S.REJECTED,
    (S.FAILED, E.RETRY): S.PENDING_DNS,
    (S.PENDING_DNS, E.REGENERATE_TOKEN): S.PENDING_DNS,
    (S.VERIFIED_DNS, E.REGENERATE_TOKEN): S.PENDING_DNS,
    (S.ACTIVE, E.REGENERATE_TOKEN): S.PENDING_DNS,
    (S.FAILED, E.REGENERATE_TOKEN): S.PENDING_DNS,
}

_FAILURE_ERRORS = {
    CheckOutcome.TOKEN_MISMATCH: TokenMismatch,
    CheckOutcome.NOT_PROPAGATED: DnsNotYetPropagated,
    CheckOutcome.RESOLVER_ERROR: ResolverUnavailable,
}


def next_status(current: Optional[DomainStatus], event: DomainEvent) -> DomainStatus:
    try:
        return TRANSITIONS[(current, event)]
    except KeyError:
        state = current.value if current else "new"
        raise IllegalTransition(f"Cannot {event.value.replace('_', ' ')} a domain in state '{state}'")


def allowed_events(current: Optional[DomainStatus]) -> List[DomainEvent]:
    return [event for (status, event) in TRANSITIONS if status == current]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; they were stored as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _apply(record: CustomDomain, event: DomainEvent, now: datetime) -> DomainStatus:
    previous = record.status
    new = next_status(previous, event)
    record.status = new
    if previous == S.ACTIVE and new != S.ACTIVE:
        record.is_primary = False
    if new == S.ACTIVE:
        record.activated_at = now
    elif previous == S.ACTIVE:
        record.activated_at = None

    STATUS_TRANSITIONS.labels(event=event.value, to_status=new.value).inc()
    logger.info(
        "Domain %s: %s --%s--> %s",
        record.domain, previous.value if previous else "-", event.value, new.value,
    )
    return new


def _commit(db: Session, *records: CustomDomain) -> None:
    db.commit()
    for record in records:
        invalidate_domain_cache(domain=record.domain, owner_id=record.owner_id)


def _reset_verification(record: CustomDomain, now: datetime) -> None:
    record.dns_verified = False
    record.verification_attempts = 0
    record.consecutive_failures = 0
    record.last_error = None
    record.last_checked_at = None
    record.verification_started_at = now


def _lock_owner(db: Session, owner_id: UUID) -> List[CustomDomain]:
    db.flush()
    try:
        return crud_domain.lock_owner_domains(db, owner_id)
    except OperationalError:
        db.rollback()
        raise PrimaryConflict("Another change to this profile's domains is in progress")


# ═══════════════════════════════════════════
#  Operations
# ═══════════════════════════════════════════

def claim(db: Session, owner_id: UUID, raw_domain: str, include_www: bool = False) -> List[CustomDomain]:
    """Register a domain (and optionally its www sibling) in ``pending_dns``.

    Either every requested name is claimed or none is.
    """
    domain = normalize_domain(raw_domain)
    names = [domain]
    if include_www and is_apex(domain):
        names.append(www_variant(domain))

    for name in names:
        if crud_domain.get_by_domain(db, name) is not None:
            raise DomainAlreadyClaimed(f"{name} is already registered")

    now = utcnow()
    records = []
    for name in names:
        record = CustomDomain(
            id=uuid.uuid4(),
            owner_id=owner_id,
            domain=name,
            is_primary=False,
            verification_token=generate_verification_token(owner_id),
            verification_started_at=now,
            dns_verified=False,
            verification_attempts=0,
            consecutive_failures=0,
        )
        _apply(record, E.CLAIM, now)
        crud_domain.add(db, record)
        records.append(record)

    try:
        _commit(db, *records)
    except IntegrityError:
        # Lost a race with another claim of the same name
        db.rollback()
        raise DomainAlreadyClaimed(f"{domain} is already registered")

    for record in records:
        db.refresh(record)
    return records


def deadline_exceeded(record: CustomDomain, now: datetime) -> bool:
    if record.consecutive_failures >= settings.DOMAIN_VERIFY_MAX_FAILURES:
        return True
    window_start = as_utc(record.verification_started_at)
    last_verified = as_utc(record.last_verified_at)
    if last_verified is not None and (window_start is None or last_verified > window_start):
        window_start = last_verified
    if window_start is None:
        return False
    return now - window_start >= timedelta(hours=settings.DOMAIN_VERIFY_MAX_WAIT_HOURS)


def record_check(
    db: Session,
    record: CustomDomain,
    result: DnsCheckResult,
    *,
    now: Optional[datetime] = None,
    enforce_deadline: bool = False,
) -> Optional[DomainError]:
    """Fold one DNS check into ``record``; returns the error to report, if any.

    Only the scheduler passes ``enforce_deadline``; a manual check can never
    fail a record by itself.
    """
    now = now or utcnow()
    record.last_checked_at = now
    record.verification_attempts = (record.verification_attempts or 0) + 1

    if result.verified:
        record.dns_verified = True
        record.last_verified_at = now
        record.consecutive_failures = 0
        record.last_error = None
        if record.status == S.PENDING_DNS:
            _apply(record, E.DNS_VERIFIED, now)
        if settings.DOMAIN_AUTO_ACTIVATE and record.status == S.VERIFIED_DNS:
            _auto_activate(db, record, now)
        return None

    outcome = result.outcome
    error = _FAILURE_ERRORS[outcome]()
    record.dns_verified = False
    record.last_error = error.code
    if outcome != CheckOutcome.RESOLVER_ERROR:
        record.consecutive_failures = (record.consecutive_failures or 0) + 1
    else:
        logger.warning("Resolver error while checking %s; will retry", record.domain)

    if enforce_deadline and record.status in crud_domain.CHECKABLE_STATUSES and deadline_exceeded(record, now):
        _apply(record, E.VERIFICATION_TIMED_OUT, now)
        record.last_error = VerificationTimedOut.code
        return VerificationTimedOut(
            f"DNS verification for {record.domain} did not succeed in time; retry once the records are in place"
        )
    return error


def _auto_activate(db: Session, record: CustomDomain, now: datetime) -> None:
    _apply(record, E.ACTIVATE, now)
    db.flush()
    if crud_domain.get_active_primary(db, record.owner_id) is None:
        record.is_primary = True
        logger.info("Domain %s auto-activated as primary", record.domain)


def activate(db: Session, record: CustomDomain, make_primary: bool = False) -> CustomDomain:
    now = utcnow()
    next_status(record.status, E.ACTIVATE)
    if not record.dns_verified:
        raise IllegalTransition("DNS ownership has not been verified for the current token")

    if make_primary:
        rows = _lock_owner(db, record.owner_id)
        _apply(record, E.ACTIVATE, now)
        _swap_primary(db, record, rows)
    else:
        _apply(record, E.ACTIVATE, now)

    try:
        _commit(db, record)
    except IntegrityError:
        db.rollback()
        raise PrimaryConflict()
    db.refresh(record)
    return record


def _swap_primary(db: Session, record: CustomDomain, rows: List[CustomDomain]) -> None:
    for other in rows:
        if other.id != record.id and other.is_primary:
            other.is_primary = False
    # the partial unique index must never see two primaries at once
    db.flush()
    record.is_primary = True


def set_primary(db: Session, record: CustomDomain) -> CustomDomain:
    rows = _lock_owner(db, record.owner_id)
    if record.status != S.ACTIVE:
        raise PrimaryConflict("Only an active domain can be primary")
    if not record.is_primary:
        _swap_primary(db, record, rows)
        try:
            _commit(db, record)
        except IntegrityError:
            db.rollback()
            raise PrimaryConflict()
        logger.info("Domain %s is now primary for %s", record.domain, record.owner_id)
    db.refresh(record)
    return record


def clear_primary(db: Session, record: CustomDomain) -> CustomDomain:
    if record.is_primary:
        record.is_primary = False
        _commit(db, record)
        db.refresh(record)
    return record


def reject(db: Session, record: CustomDomain, reason: Optional[str] = None) -> CustomDomain:
    _apply(record, E.REJECT, utcnow())
    record.rejected_reason = reason
    _commit(db, record)
    db.refresh(record)
    return record


def retry(db: Session, record: CustomDomain) -> CustomDomain:
    now = utcnow()
    _apply(record, E.RETRY, now)
    _reset_verification(record, now)
    _commit(db, record)
    db.refresh(record)
    return record


def regenerate_token(db: Session, record: CustomDomain) -> CustomDomain:
    """Mint a new token; any verification done against the old one is void."""
    now = utcnow()
    _apply(record, E.REGENERATE_TOKEN, now)
    record.verification_token = generate_verification_token(record.owner_id)
    record.last_verified_at = None
    _reset_verification(record, now)
    _commit(db, record)
    db.refresh(record)
    return record


def remove(db: Session, record: Optional[CustomDomain]) -> None:
    if record is None:
        return
    domain, owner_id = record.domain, record.owner_id
    crud_domain.delete(db, record)
    db.commit()
    invalidate_domain_cache(domain=domain, owner_id=owner_id)
    logger.info("Domain %s removed", domain)
