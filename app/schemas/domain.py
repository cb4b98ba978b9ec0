from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.models.custom_domain import DomainStatus


class DomainCreate(BaseModel):
    domain: str = Field(min_length=1, max_length=300)
    include_www: bool = False


class DnsRecord(BaseModel):
    type: str
    host: str        # relative to the tenant's zone, "@" for the apex
    name: str        # fully qualified
    value: str
    required: bool = True


class DnsInstructions(BaseModel):
    domain: str
    records: List[DnsRecord]


class CustomDomain(BaseModel):
    id: UUID
    domain: str
    status: DomainStatus
    is_primary: bool
    dns_verified: bool
    verification_token: str
    last_checked_at: Optional[datetime] = None
    last_verified_at: Optional[datetime] = None
    verification_attempts: int = 0
    last_error: Optional[str] = None
    activated_at: Optional[datetime] = None
    rejected_reason: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CustomDomainClaimed(CustomDomain):
    dns_records: List[DnsRecord]


class ClaimResult(BaseModel):
    domains: List[CustomDomainClaimed]


class VerifyResult(BaseModel):
    id: UUID
    domain: str
    status: DomainStatus
    outcome: str
    verified: bool
    dns_verified: bool
    error_code: Optional[str] = None
    retryable: bool = False
    message: Optional[str] = None
    details: List[str] = []


# ── Operator ──

class AdminCustomDomain(CustomDomain):
    owner_id: UUID
    consecutive_failures: int = 0


class ActivateRequest(BaseModel):
    make_primary: bool = False


class RejectRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)
