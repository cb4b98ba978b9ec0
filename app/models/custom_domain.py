"""
Custom Domain Model

Tracks per-profile custom domain records with their DNS verification
lifecycle. ``status`` is only ever written by app.services.lifecycle.
"""
import enum
import uuid
from sqlalchemy import (
    Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text, Uuid, func, text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.types import TypeDecorator
from app.db.base_class import Base


class DomainStatus(str, enum.Enum):
    PENDING_DNS = "pending_dns"
    VERIFIED_DNS = "verified_dns"
    ACTIVE = "active"
    REJECTED = "rejected"
    FAILED = "failed"


# Legacy values written by older clients
_STATUS_ALIASES = {
    "pending": DomainStatus.PENDING_DNS,
    "pending_dns": DomainStatus.PENDING_DNS,
    "verifying": DomainStatus.PENDING_DNS,
    "verified_dns": DomainStatus.VERIFIED_DNS,
    "pending_activation": DomainStatus.VERIFIED_DNS,
    "active": DomainStatus.ACTIVE,
    "active_manual": DomainStatus.ACTIVE,
    "rejected": DomainStatus.REJECTED,
    "failed": DomainStatus.FAILED,
}


def normalize_status(value) -> DomainStatus:
    """Map any stored status string onto the canonical enum.

    Unrecognised values become ``failed`` so they can never grant access.
    """
    if isinstance(value, DomainStatus):
        return value
    if value is None:
        return DomainStatus.FAILED
    return _STATUS_ALIASES.get(str(value).strip().lower(), DomainStatus.FAILED)


class DomainStatusType(TypeDecorator):
    """String column that only ever surfaces canonical DomainStatus values."""

    impl = String(32)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return normalize_status(value).value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return normalize_status(value)


class CustomDomain(Base):
    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    owner_id = Column(Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    domain = Column(String(253), unique=True, nullable=False, index=True)

    status = Column(DomainStatusType(), nullable=False, default=DomainStatus.PENDING_DNS, index=True)
    is_primary = Column(Boolean, nullable=False, default=False)

    # DNS Verification
    verification_token = Column(String(64), nullable=False)   # TXT value is <app>_verify=<token>
    verification_started_at = Column(DateTime(timezone=True), nullable=False)  # claim, retry or new token
    dns_verified = Column(Boolean, nullable=False, default=False)
    last_verified_at = Column(DateTime(timezone=True), nullable=True)
    last_checked_at = Column(DateTime(timezone=True), nullable=True)
    verification_attempts = Column(Integer, nullable=False, default=0)
    consecutive_failures = Column(Integer, nullable=False, default=0)
    last_error = Column(String(64), nullable=True)

    activated_at = Column(DateTime(timezone=True), nullable=True)
    rejected_reason = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    owner = relationship("Profile", back_populates="domains")

    __table_args__ = (
        # One primary domain per owner; primary is cleared whenever a record leaves `active`
        Index(
            "uq_customdomains_owner_primary",
            "owner_id",
            unique=True,
            postgresql_where=text("is_primary"),
            sqlite_where=text("is_primary = 1"),
        ),
    )

    def __repr__(self) -> str:
        return f"<CustomDomain {self.domain} {self.status}>"
