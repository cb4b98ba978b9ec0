from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.models.profile import Profile
from app.schemas.profile import ProfileCreate, DomainSettingsUpdate


def get(db: Session, profile_id: UUID) -> Optional[Profile]:
    return db.query(Profile).filter(Profile.id == profile_id).first()


def get_by_username(db: Session, username: str) -> Optional[Profile]:
    return db.query(Profile).filter(Profile.username == username.lower()).first()


def create(db: Session, *, obj_in: ProfileCreate) -> Profile:
    db_obj = Profile(
        username=obj_in.username.lower(),
        display_name=obj_in.display_name,
        bio=obj_in.bio,
        is_public=obj_in.is_public,
        canonical_preference=obj_in.canonical_preference,
        force_https=obj_in.force_https,
    )
    db.add(db_obj)
    db.commit()
    db.refresh(db_obj)
    return db_obj


def update_domain_settings(db: Session, *, db_obj: Profile, obj_in: DomainSettingsUpdate) -> Profile:
    update_data = obj_in.model_dump(exclude_unset=True)
    for field, value in update_data.items():
        setattr(db_obj, field, value)
    db.add(db_obj)
    db.commit()
    db.refresh(db_obj)
    return db_obj
