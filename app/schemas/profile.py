from typing import Literal, Optional
from uuid import UUID
from datetime import datetime
from pydantic import BaseModel, Field

CanonicalPreference = Literal["www", "non-www", "auto"]


class ProfileBase(BaseModel):
    display_name: Optional[str] = None
    bio: Optional[str] = None
    is_public: bool = True


class ProfileCreate(ProfileBase):
    username: str = Field(min_length=1, max_length=64, pattern=r"^[A-Za-z0-9_.-]+$")
    canonical_preference: CanonicalPreference = "non-www"
    force_https: bool = True


class DomainSettingsUpdate(BaseModel):
    canonical_preference: Optional[CanonicalPreference] = None
    force_https: Optional[bool] = None


class Profile(ProfileBase):
    id: UUID
    username: str
    canonical_preference: str
    force_https: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# Public page payload; rendering happens elsewhere
class PublicProfile(BaseModel):
    username: str
    display_name: Optional[str] = None
    bio: Optional[str] = None
    canonical_url: str
