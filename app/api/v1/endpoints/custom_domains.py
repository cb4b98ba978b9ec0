"""
Custom Domain Management API

Lets a profile owner:
  1. Claim a custom domain (optionally together with its www sibling)
  2. Get the DNS records to publish (A + TXT)
  3. Verify DNS now instead of waiting for the scheduler
  4. Retry a failed verification / regenerate the verification token
  5. Choose the primary domain
  6. List / delete custom domains
"""
import logging
from typing import Any, List
from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from app.api import deps
from app.config import settings
from app.core.errors import DomainNotFound
from app.crud import crud_domain
from app.models.custom_domain import CustomDomain
from app.models.profile import Profile
from app.schemas import domain as schemas
from app.services import lifecycle, verification
from app.services.domain_names import is_apex
from app.services.tokens import txt_record_name, txt_record_value

router = APIRouter()
logger = logging.getLogger("linkbio.api.domains")

_OUTCOME_MESSAGES = {
    "verified": "DNS verified",
    verification.OUTCOME_IN_PROGRESS: "A verification for this domain is already running; try again shortly",
    verification.OUTCOME_SUPERSEDED: "The verification token changed during the check; verify again",
}


# ── Helpers ──

def _relative_host(prefix: str, domain: str) -> str:
    if is_apex(domain):
        return prefix or "@"
    sub = domain.split(".", 1)[0]
    return f"{prefix}.{sub}" if prefix else sub


def dns_records(record: CustomDomain) -> List[schemas.DnsRecord]:
    ip = settings.platform_server_ips[0] if settings.platform_server_ips else ""
    records = [
        schemas.DnsRecord(type="A", host=_relative_host("", record.domain), name=record.domain, value=ip),
    ]
    if is_apex(record.domain):
        records.append(
            schemas.DnsRecord(type="A", host="www", name=f"www.{record.domain}", value=ip, required=False)
        )
    records.append(
        schemas.DnsRecord(
            type="TXT",
            host=_relative_host(settings.txt_record_host, record.domain),
            name=txt_record_name(record.domain),
            value=txt_record_value(record.verification_token),
        )
    )
    return records


def _get_owned_or_404(db: Session, domain_id: UUID, owner: Profile) -> CustomDomain:
    record = crud_domain.get_owned(db, domain_id, owner.id)
    if not record:
        raise DomainNotFound()
    return record


# ── Endpoints ──

@router.get("/", response_model=List[schemas.CustomDomain])
def list_domains(
    db: Session = Depends(deps.get_db),
    current_profile: Profile = Depends(deps.get_current_profile),
) -> Any:
    return crud_domain.get_multi_by_owner(db, current_profile.id)


@router.post("/", response_model=schemas.ClaimResult, status_code=201)
def claim_domain(
    body: schemas.DomainCreate,
    db: Session = Depends(deps.get_db),
    current_profile: Profile = Depends(deps.get_current_profile),
) -> Any:
    records = lifecycle.claim(db, current_profile.id, body.domain, include_www=body.include_www)
    logger.info(
        "Custom domain claimed: %s by %s",
        ", ".join(r.domain for r in records), current_profile.username,
    )
    return schemas.ClaimResult(
        domains=[
            schemas.CustomDomainClaimed(
                **schemas.CustomDomain.model_validate(r).model_dump(),
                dns_records=dns_records(r),
            )
            for r in records
        ]
    )


@router.get("/{domain_id}", response_model=schemas.CustomDomain)
def get_domain(
    domain_id: UUID,
    db: Session = Depends(deps.get_db),
    current_profile: Profile = Depends(deps.get_current_profile),
) -> Any:
    return _get_owned_or_404(db, domain_id, current_profile)


@router.get("/{domain_id}/dns-instructions", response_model=schemas.DnsInstructions)
def get_dns_instructions(
    domain_id: UUID,
    db: Session = Depends(deps.get_db),
    current_profile: Profile = Depends(deps.get_current_profile),
) -> Any:
    record = _get_owned_or_404(db, domain_id, current_profile)
    return schemas.DnsInstructions(domain=record.domain, records=dns_records(record))


@router.post("/{domain_id}/verify", response_model=schemas.VerifyResult)
def verify_domain(
    domain_id: UUID,
    db: Session = Depends(deps.get_db),
    current_profile: Profile = Depends(deps.get_current_profile),
) -> Any:
    """
    Run one DNS check now.

    DNS failures are reported in the body (``error_code`` is one of
    dns_not_propagated, token_mismatch, resolver_error) rather than as HTTP
    errors: the request itself succeeded.
    """
    _get_owned_or_404(db, domain_id, current_profile)
    report = verification.verify_now(db, domain_id)
    if report.error is not None:
        message = report.error.message
    else:
        message = _OUTCOME_MESSAGES.get(report.outcome)
    return schemas.VerifyResult(
        id=report.domain_id,
        domain=report.domain,
        status=report.status,
        outcome=report.outcome,
        verified=report.verified,
        dns_verified=report.dns_verified,
        error_code=report.error_code,
        retryable=report.retryable,
        message=message,
        details=report.details,
    )


@router.post("/{domain_id}/retry", response_model=schemas.CustomDomain)
def retry_domain(
    domain_id: UUID,
    db: Session = Depends(deps.get_db),
    current_profile: Profile = Depends(deps.get_current_profile),
) -> Any:
    record = _get_owned_or_404(db, domain_id, current_profile)
    return lifecycle.retry(db, record)


@router.post("/{domain_id}/regenerate-token", response_model=schemas.CustomDomainClaimed)
def regenerate_token(
    domain_id: UUID,
    db: Session = Depends(deps.get_db),
    current_profile: Profile = Depends(deps.get_current_profile),
) -> Any:
    record = _get_owned_or_404(db, domain_id, current_profile)
    record = lifecycle.regenerate_token(db, record)
    return schemas.CustomDomainClaimed(
        **schemas.CustomDomain.model_validate(record).model_dump(),
        dns_records=dns_records(record),
    )


@router.post("/{domain_id}/primary", response_model=schemas.CustomDomain)
def set_primary(
    domain_id: UUID,
    db: Session = Depends(deps.get_db),
    current_profile: Profile = Depends(deps.get_current_profile),
) -> Any:
    record = _get_owned_or_404(db, domain_id, current_profile)
    return lifecycle.set_primary(db, record)


@router.delete("/{domain_id}/primary", response_model=schemas.CustomDomain)
def clear_primary(
    domain_id: UUID,
    db: Session = Depends(deps.get_db),
    current_profile: Profile = Depends(deps.get_current_profile),
) -> Any:
    record = _get_owned_or_404(db, domain_id, current_profile)
    return lifecycle.clear_primary(db, record)


@router.delete("/{domain_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_domain(
    domain_id: UUID,
    db: Session = Depends(deps.get_db),
    current_profile: Profile = Depends(deps.get_current_profile),
) -> Response:
    """Remove a domain; deleting something that is already gone is not an error."""
    record = crud_domain.get_owned(db, domain_id, current_profile.id)
    lifecycle.remove(db, record)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
