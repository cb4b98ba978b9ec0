"""
Public profile endpoint

Unauthenticated. Reached directly on the platform host (``/<username>``) or
through the custom-domain middleware, which rewrites an active custom
domain's ``/`` to the owner's profile path.
"""
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from app.api import deps
from app.config import settings
from app.crud import crud_profile
from app.schemas.profile import PublicProfile
from app.services.domain_cache import lookup_tenant_by_owner

router = APIRouter()


def canonical_url(profile) -> str:
    tenant = lookup_tenant_by_owner(profile.id)
    if tenant is not None and tenant.primary_domain:
        scheme = "https" if tenant.force_https else settings.PLATFORM_SCHEME
        return f"{scheme}://{tenant.primary_domain}/{profile.username}"
    return f"{settings.PLATFORM_SCHEME}://{settings.PLATFORM_DOMAIN}/{profile.username}"


@router.get("/{username}", response_model=PublicProfile)
def get_public_profile(
    username: str,
    request: Request,
    db: Session = Depends(deps.get_db),
) -> Any:
    profile = crud_profile.get_by_username(db, username)
    if not profile or not profile.is_public:
        raise HTTPException(status_code=404, detail="Profile not found")

    # Custom-domain requests may only ever render the domain owner's profile
    served_owner = getattr(request.state, "served_owner_id", None)
    if served_owner is not None and served_owner != profile.id:
        raise HTTPException(status_code=404, detail="Profile not found")

    return PublicProfile(
        username=profile.username,
        display_name=profile.display_name,
        bio=profile.bio,
        canonical_url=canonical_url(profile),
    )
