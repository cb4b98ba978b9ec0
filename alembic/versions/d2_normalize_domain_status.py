"""normalize legacy custom domain statuses

Rows imported from the previous system may carry status aliases
(pending, verifying, pending_activation, active_manual) or values nobody
recognises. Rewrite them to the canonical set; unknown values become failed
so they can never serve content. Primary flags on rows that end up inactive
are cleared.

Revision ID: d2_normalize_domain_status
Revises: d1_profiles_custom_domains
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "d2_normalize_domain_status"
down_revision: Union[str, None] = "d1_profiles_custom_domains"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_ALIASES = {
    "pending": "pending_dns",
    "verifying": "pending_dns",
    "pending_activation": "verified_dns",
    "active_manual": "active",
}
_CANONICAL = ("pending_dns", "verified_dns", "active", "rejected", "failed")


def upgrade() -> None:
    bind = op.get_bind()
    for legacy, canonical in _ALIASES.items():
        bind.execute(
            sa.text("UPDATE customdomains SET status = :canonical WHERE lower(status) = :legacy"),
            {"canonical": canonical, "legacy": legacy},
        )
    bind.execute(
        sa.text("UPDATE customdomains SET status = lower(status) WHERE lower(status) IN :canonical").bindparams(
            sa.bindparam("canonical", expanding=True)
        ),
        {"canonical": list(_CANONICAL)},
    )
    bind.execute(
        sa.text("UPDATE customdomains SET status = 'failed' WHERE status NOT IN :canonical").bindparams(
            sa.bindparam("canonical", expanding=True)
        ),
        {"canonical": list(_CANONICAL)},
    )
    bind.execute(sa.text("UPDATE customdomains SET is_primary = :no WHERE status <> 'active'"), {"no": False})


def downgrade() -> None:
    # aliases carried no extra information
    pass
