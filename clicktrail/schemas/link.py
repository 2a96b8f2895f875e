"""Short link schemas shared by the link store, cache and redirect gate."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from clicktrail.models.link import LinkStatus


class LinkRecord(BaseModel):
    """Snapshot of the link fields needed to serve a redirect.

    Built from a ``ShortLink`` row or from its cached JSON form.
    """

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    owner_id: UUID
    short_code: str
    original_url: str
    status: LinkStatus
    disabled_reason: str | None = None
    password_hash: str | None = None
    expires_at: datetime | None = None
    created_at: datetime
