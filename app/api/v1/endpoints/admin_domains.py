"""
Operator custom-domain API

Activation is the only way a domain starts serving content, so it lives here
and requires a DNS-verified record.
"""
import logging
from typing import Any, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from app.api import deps
from app.core.errors import DomainNotFound
from app.crud import crud_domain
from app.models.custom_domain import DomainStatus
from app.schemas import domain as schemas
from app.services import lifecycle

router = APIRouter()
logger = logging.getLogger("linkbio.api.admin_domains")


def _get_or_404(db: Session, domain_id: UUID):
    record = crud_domain.get(db, domain_id)
    if not record:
        raise DomainNotFound()
    return record


@router.get("/", response_model=List[schemas.AdminCustomDomain])
def list_domains(
    status_filter: Optional[DomainStatus] = Query(None, alias="status"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(deps.get_db),
    _: deps.Principal = Depends(deps.require_operator),
) -> Any:
    return crud_domain.get_multi(db, status=status_filter, skip=skip, limit=limit)


@router.post("/{domain_id}/activate", response_model=schemas.AdminCustomDomain)
def activate_domain(
    domain_id: UUID,
    body: schemas.ActivateRequest,
    db: Session = Depends(deps.get_db),
    principal: deps.Principal = Depends(deps.require_operator),
) -> Any:
    record = lifecycle.activate(db, _get_or_404(db, domain_id), make_primary=body.make_primary)
    logger.info("Domain %s activated by operator %s", record.domain, principal.subject)
    return record


@router.post("/{domain_id}/reject", response_model=schemas.AdminCustomDomain)
def reject_domain(
    domain_id: UUID,
    body: schemas.RejectRequest,
    db: Session = Depends(deps.get_db),
    principal: deps.Principal = Depends(deps.require_operator),
) -> Any:
    record = lifecycle.reject(db, _get_or_404(db, domain_id), reason=body.reason)
    logger.info("Domain %s rejected by operator %s", record.domain, principal.subject)
    return record


@router.delete("/{domain_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_domain(
    domain_id: UUID,
    db: Session = Depends(deps.get_db),
    _: deps.Principal = Depends(deps.require_operator),
) -> Response:
    lifecycle.remove(db, crud_domain.get(db, domain_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
