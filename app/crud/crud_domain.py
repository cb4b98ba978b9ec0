from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.models.custom_domain import CustomDomain, DomainStatus

# Statuses the scheduler keeps polling
CHECKABLE_STATUSES = (DomainStatus.PENDING_DNS, DomainStatus.VERIFIED_DNS)


@dataclass(frozen=True)
class DomainSnapshot:
    """Immutable, session-free view of a record for request-time routing."""

    id: UUID
    domain: str
    owner_id: UUID
    status: DomainStatus
    is_primary: bool

    @property
    def is_active(self) -> bool:
        return self.status == DomainStatus.ACTIVE


def to_snapshot(record: CustomDomain) -> DomainSnapshot:
    return DomainSnapshot(
        id=record.id,
        domain=record.domain,
        owner_id=record.owner_id,
        status=record.status,
        is_primary=bool(record.is_primary),
    )


def get(db: Session, domain_id: UUID) -> Optional[CustomDomain]:
    return db.query(CustomDomain).filter(CustomDomain.id == domain_id).first()


def get_for_update(db: Session, domain_id: UUID) -> Optional[CustomDomain]:
    return (
        db.query(CustomDomain)
        .filter(CustomDomain.id == domain_id)
        .populate_existing()
        .with_for_update()
        .first()
    )


def get_owned(db: Session, domain_id: UUID, owner_id: UUID) -> Optional[CustomDomain]:
    return db.query(CustomDomain).filter(
        CustomDomain.id == domain_id,
        CustomDomain.owner_id == owner_id,
    ).first()


def get_by_domain(db: Session, domain: str) -> Optional[CustomDomain]:
    return db.query(CustomDomain).filter(CustomDomain.domain == domain).first()


def get_multi_by_owner(db: Session, owner_id: UUID) -> List[CustomDomain]:
    return (
        db.query(CustomDomain)
        .filter(CustomDomain.owner_id == owner_id)
        .order_by(CustomDomain.created_at.asc(), CustomDomain.domain.asc())
        .all()
    )


def get_multi(
    db: Session,
    *,
    status: Optional[DomainStatus] = None,
    skip: int = 0,
    limit: int = 100,
) -> List[CustomDomain]:
    query = db.query(CustomDomain)
    if status is not None:
        query = query.filter(CustomDomain.status == status)
    return query.order_by(CustomDomain.created_at.desc()).offset(skip).limit(limit).all()


def lock_owner_domains(db: Session, owner_id: UUID, *, nowait: bool = True) -> List[CustomDomain]:
    """Row-lock all of an owner's records (serializes primary changes)."""
    return (
        db.query(CustomDomain)
        .filter(CustomDomain.owner_id == owner_id)
        .populate_existing()
        .with_for_update(nowait=nowait)
        .all()
    )


def get_active_primary(db: Session, owner_id: UUID) -> Optional[CustomDomain]:
    return db.query(CustomDomain).filter(
        CustomDomain.owner_id == owner_id,
        CustomDomain.is_primary.is_(True),
        CustomDomain.status == DomainStatus.ACTIVE,
    ).first()


def get_active_domain_names(db: Session, owner_id: UUID) -> List[str]:
    rows = db.query(CustomDomain.domain).filter(
        CustomDomain.owner_id == owner_id,
        CustomDomain.status == DomainStatus.ACTIVE,
    ).all()
    return [row[0] for row in rows]


def get_checkable(
    db: Session,
    *,
    checked_before: Optional[datetime] = None,
    skip: int = 0,
    limit: int = 100,
) -> List[CustomDomain]:
    """Records the scheduler may poll, least recently checked first."""
    query = db.query(CustomDomain).filter(CustomDomain.status.in_(CHECKABLE_STATUSES))
    if checked_before is not None:
        query = query.filter(
            or_(CustomDomain.last_checked_at.is_(None), CustomDomain.last_checked_at < checked_before)
        )
    return (
        query
        .order_by(
            CustomDomain.last_checked_at.is_(None).desc(),
            CustomDomain.last_checked_at.asc(),
        )
        .offset(skip)
        .limit(limit)
        .all()
    )


def add(db: Session, record: CustomDomain) -> CustomDomain:
    db.add(record)
    return record


def delete(db: Session, record: CustomDomain) -> None:
    db.delete(record)
