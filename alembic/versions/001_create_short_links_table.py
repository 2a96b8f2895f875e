"""Create short_links table.

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the short_links table."""
    op.create_table(
        "short_links",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column(
            "owner_id",
            sa.Uuid(),
            nullable=False,
            comment="Account that created the link",
        ),
        sa.Column(
            "short_code",
            sa.String(50),
            nullable=False,
            comment="Short code for the URL (e.g., 'abc123' or 'my-custom-slug')",
        ),
        sa.Column(
            "original_url",
            sa.Text(),
            nullable=False,
            comment="The original URL to redirect to",
        ),
        sa.Column("title", sa.String(255), nullable=True),
        sa.Column(
            "status",
            sa.String(8),
            nullable=False,
            server_default=sa.text("'active'"),
        ),
        sa.Column(
            "disabled_reason",
            sa.Text(),
            nullable=True,
            comment="Why the link was disabled by moderation",
        ),
        sa.Column(
            "password_hash",
            sa.String(128),
            nullable=True,
            comment="Digest of the access password, if the link is protected",
        ),
        sa.Column(
            "click_count",
            sa.Integer(),
            nullable=False,
            server_default=sa.text("0"),
            comment="Total click count (denormalized for quick access)",
        ),
        sa.Column("last_clicked_at", sa.DateTime(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "expires_at",
            sa.DateTime(),
            nullable=True,
            comment="Optional expiration timestamp",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_short_links")),
    )
    op.create_index(
        op.f("ix_short_links_short_code"),
        "short_links",
        ["short_code"],
        unique=True,
    )
    op.create_index(op.f("ix_short_links_owner_id"), "short_links", ["owner_id"])
    op.create_index(op.f("ix_short_links_status"), "short_links", ["status"])


def downgrade() -> None:
    """Drop the short_links table."""
    op.drop_index(op.f("ix_short_links_status"), table_name="short_links")
    op.drop_index(op.f("ix_short_links_owner_id"), table_name="short_links")
    op.drop_index(op.f("ix_short_links_short_code"), table_name="short_links")
    op.drop_table("short_links")
