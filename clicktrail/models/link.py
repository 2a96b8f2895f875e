"""Short link SQLAlchemy model."""

import enum
from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import DateTime, Enum, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from clicktrail.core.clock import utcnow
from clicktrail.core.database import Base


class LinkStatus(str, enum.Enum):
    """Lifecycle status of a short link."""

    ACTIVE = "active"
    EXPIRED = "expired"
    DISABLED = "disabled"
    DELETED = "deleted"


class ShortLink(Base):
    """Short link model for shortened URLs.

    Links are never physically deleted while clicks reference them; removal
    is a status change to ``deleted``.
    """

    __tablename__ = "short_links"

    id: Mapped[UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid4,
    )
    owner_id: Mapped[UUID] = mapped_column(
        Uuid,
        nullable=False,
        index=True,
        comment="Account that created the link",
    )
    short_code: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
        index=True,
        comment="Short code for the URL (e.g., 'abc123' or 'my-custom-slug')",
    )
    original_url: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="The original URL to redirect to",
    )
    title: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    status: Mapped[LinkStatus] = mapped_column(
        Enum(
            LinkStatus,
            name="link_status",
            native_enum=False,
            values_callable=lambda e: [member.value for member in e],
        ),
        default=LinkStatus.ACTIVE,
        nullable=False,
        index=True,
    )
    disabled_reason: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
        comment="Why the link was disabled by moderation",
    )
    password_hash: Mapped[str | None] = mapped_column(
        String(128),
        nullable=True,
        comment="Digest of the access password, if the link is protected",
    )
    click_count: Mapped[int] = mapped_column(
        default=0,
        nullable=False,
        comment="Total click count (denormalized for quick access)",
    )
    last_clicked_at: Mapped[datetime | None] = mapped_column(
        DateTime,
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
    )
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime,
        nullable=True,
        comment="Optional expiration timestamp",
    )

    def __repr__(self) -> str:
        return f"<ShortLink {self.short_code} -> {self.original_url[:50]}>"
