"""Verification token generation."""
import secrets
from uuid import UUID

from app.config import settings

TOKEN_RANDOM_BYTES = 16  # 128 bits


def generate_verification_token(owner_id: UUID) -> str:
    """Mint a fresh token for a domain claim.

    The random part carries all of the entropy; the owner tag only makes the
    TXT value recognisable when several profiles share a DNS zone.
    """
    owner_tag = UUID(str(owner_id)).hex[:6]
    return f"{secrets.token_hex(TOKEN_RANDOM_BYTES)}_{owner_tag}"


def txt_record_name(domain: str) -> str:
    return f"{settings.txt_record_host}.{domain}"


def txt_record_value(token: str) -> str:
    return f"{settings.txt_verify_prefix}={token}"
