"""SQLAlchemy models.

All models should be imported here for Alembic to detect them.
"""

from clicktrail.core.database import Base
from clicktrail.models.click import ClickEvent
from clicktrail.models.link import LinkStatus, ShortLink

__all__ = ["Base", "ClickEvent", "LinkStatus", "ShortLink"]
