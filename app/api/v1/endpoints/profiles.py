from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api import deps
from app.crud import crud_profile
from app.models.profile import Profile
from app.schemas import profile as schemas
from app.services.domain_cache import invalidate_domain_cache

router = APIRouter()


@router.get("/me", response_model=schemas.Profile)
def read_profile_me(current_profile: Profile = Depends(deps.get_current_profile)) -> Any:
    return current_profile


@router.patch("/me/domain-settings", response_model=schemas.Profile)
def update_domain_settings(
    body: schemas.DomainSettingsUpdate,
    db: Session = Depends(deps.get_db),
    current_profile: Profile = Depends(deps.get_current_profile),
) -> Any:
    """Canonical www preference and forced HTTPS for the profile's custom domains."""
    profile = crud_profile.update_domain_settings(db, db_obj=current_profile, obj_in=body)
    invalidate_domain_cache(owner_id=profile.id)
    return profile
