"""HTTP routers."""

from clicktrail.api.analytics import router as analytics_router
from clicktrail.api.redirect import router as redirect_router

__all__ = ["analytics_router", "redirect_router"]
