from datetime import datetime, timedelta, timezone
from typing import Optional, Union
from uuid import UUID

from jose import jwt

from app.config import settings

ROLE_OWNER = "owner"
ROLE_OPERATOR = "operator"


def create_access_token(
    subject: Union[str, UUID],
    role: str = ROLE_OWNER,
    expires_delta: Optional[timedelta] = None,
) -> str:
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode = {
        "exp": expire,
        "sub": str(subject),   # profile id
        "role": role,          # "owner" or "operator"
    }
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> dict:
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
