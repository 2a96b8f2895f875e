"""Create click_events table.

Revision ID: 002
Revises: 001
Create Date: 2026-10-19

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the click_events table."""
    op.create_table(
        "click_events",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column(
            "link_id",
            sa.Uuid(),
            nullable=False,
            comment="UUID of the shortened link (references short_links.id)",
        ),
        sa.Column(
            "short_code",
            sa.String(50),
            nullable=False,
            comment="Short code that was accessed",
        ),
        sa.Column(
            "clicked_at",
            sa.DateTime(),
            nullable=False,
            comment="UTC timestamp when the click occurred",
        ),
        sa.Column(
            "hashed_ip",
            sa.String(64),
            nullable=False,
            comment="Salted SHA-256 of the client IP",
        ),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("referrer", sa.Text(), nullable=True),
        sa.Column("referrer_category", sa.String(16), nullable=False),
        sa.Column("country", sa.String(100), nullable=False),
        sa.Column("country_code", sa.String(2), nullable=False),
        sa.Column("region", sa.String(255), nullable=False),
        sa.Column("city", sa.String(255), nullable=False),
        sa.Column("timezone", sa.String(64), nullable=False),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("device", sa.String(16), nullable=False),
        sa.Column("browser", sa.String(64), nullable=False),
        sa.Column("browser_version", sa.String(32), nullable=False),
        sa.Column("os", sa.String(64), nullable=False),
        sa.Column("os_version", sa.String(32), nullable=False),
        sa.Column("is_bot", sa.Boolean(), nullable=False),
        sa.Column("bot_type", sa.String(16), nullable=True),
        sa.Column("utm_source", sa.String(255), nullable=True),
        sa.Column("utm_medium", sa.String(255), nullable=True),
        sa.Column("utm_campaign", sa.String(255), nullable=True),
        sa.Column("utm_term", sa.String(255), nullable=True),
        sa.Column("utm_content", sa.String(255), nullable=True),
        sa.Column(
            "is_unique_visitor",
            sa.Boolean(),
            nullable=False,
            comment="Hashed IP unseen for this link in the trailing window at ingest time",
        ),
        sa.Column("session_id", sa.String(64), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_click_events")),
    )

    # Range scans per link and the unique-visitor probe
    op.create_index(
        "ix_click_events_short_code_clicked_at",
        "click_events",
        ["short_code", "clicked_at"],
    )
    op.create_index(
        "ix_click_events_short_code_hashed_ip",
        "click_events",
        ["short_code", "hashed_ip"],
    )
    op.create_index("ix_click_events_link_id", "click_events", ["link_id"])


def downgrade() -> None:
    """Drop the click_events table."""
    op.drop_index("ix_click_events_link_id", table_name="click_events")
    op.drop_index("ix_click_events_short_code_hashed_ip", table_name="click_events")
    op.drop_index("ix_click_events_short_code_clicked_at", table_name="click_events")
    op.drop_table("click_events")
