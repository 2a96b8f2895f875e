"""Click event SQLAlchemy model for the per-link click ledger."""

from datetime import datetime
from uuid import UUID

from sqlalchemy import BigInteger, Boolean, DateTime, Float, Index, Integer, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from clicktrail.core.clock import utcnow
from clicktrail.core.database import Base


class ClickEvent(Base):
    """One observed redirect.

    Rows are immutable once written. ``id`` increases with insertion order
    and is what retention trimming evicts by. Raw client IPs are never
    stored, only ``hashed_ip``.
    """

    __tablename__ = "click_events"

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True,
    )
    link_id: Mapped[UUID] = mapped_column(
        Uuid,
        nullable=False,
        comment="UUID of the shortened link (references short_links.id)",
    )
    short_code: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="Short code that was accessed",
    )
    clicked_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        comment="UTC timestamp when the click occurred",
    )
    hashed_ip: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="Salted SHA-256 of the client IP",
    )
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    referrer: Mapped[str | None] = mapped_column(Text, nullable=True)
    referrer_category: Mapped[str] = mapped_column(
        String(16),
        default="direct",
        nullable=False,
    )

    # Geography
    country: Mapped[str] = mapped_column(String(100), default="Unknown", nullable=False)
    country_code: Mapped[str] = mapped_column(String(2), default="XX", nullable=False)
    region: Mapped[str] = mapped_column(String(255), default="Unknown", nullable=False)
    city: Mapped[str] = mapped_column(String(255), default="Unknown", nullable=False)
    timezone: Mapped[str] = mapped_column(String(64), default="UTC", nullable=False)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)

    # Client
    device: Mapped[str] = mapped_column(String(16), default="unknown", nullable=False)
    browser: Mapped[str] = mapped_column(String(64), default="Unknown", nullable=False)
    browser_version: Mapped[str] = mapped_column(String(32), default="Unknown", nullable=False)
    os: Mapped[str] = mapped_column(String(64), default="Unknown", nullable=False)
    os_version: Mapped[str] = mapped_column(String(32), default="Unknown", nullable=False)
    is_bot: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    bot_type: Mapped[str | None] = mapped_column(String(16), nullable=True)

    # Campaign
    utm_source: Mapped[str | None] = mapped_column(String(255), nullable=True)
    utm_medium: Mapped[str | None] = mapped_column(String(255), nullable=True)
    utm_campaign: Mapped[str | None] = mapped_column(String(255), nullable=True)
    utm_term: Mapped[str | None] = mapped_column(String(255), nullable=True)
    utm_content: Mapped[str | None] = mapped_column(String(255), nullable=True)

    is_unique_visitor: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        comment="Hashed IP unseen for this link in the trailing window at ingest time",
    )
    session_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_click_events_short_code_clicked_at", "short_code", "clicked_at"),
        Index("ix_click_events_short_code_hashed_ip", "short_code", "hashed_ip"),
        Index("ix_click_events_link_id", "link_id"),
    )

    def __repr__(self) -> str:
        return f"<ClickEvent {self.id} code={self.short_code} at={self.clicked_at}>"
