"""Redirect decision gate: whether a short code may redirect right now."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from clicktrail.core.clock import utcnow
from clicktrail.core.security import verify_password
from clicktrail.models.link import LinkStatus
from clicktrail.schemas.link import LinkRecord


class GateOutcome(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    DISABLED = "disabled"
    PASSWORD_REQUIRED = "password_required"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class GateDecision:
    outcome: GateOutcome
    reason: str | None = None

    @property
    def allowed(self) -> bool:
        return self.outcome == GateOutcome.ACTIVE


def evaluate(
    link: LinkRecord | None,
    password: str | None = None,
    now: datetime | None = None,
) -> GateDecision:
    """Decide the outcome of a redirect request.

    Checks run in a fixed order: missing or deleted, disabled, expired,
    password. Only an ``active`` decision may redirect and record a click.
    """
    if link is None or link.status == LinkStatus.DELETED:
        return GateDecision(GateOutcome.NOT_FOUND)

    if link.status == LinkStatus.DISABLED:
        return GateDecision(GateOutcome.DISABLED, link.disabled_reason)

    now = now or utcnow()
    if link.status == LinkStatus.EXPIRED or (link.expires_at is not None and now > link.expires_at):
        return GateDecision(GateOutcome.EXPIRED)

    if link.password_hash and not verify_password(password, link.password_hash):
        return GateDecision(GateOutcome.PASSWORD_REQUIRED)

    return GateDecision(GateOutcome.ACTIVE)
