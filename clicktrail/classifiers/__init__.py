"""Pure classifiers for raw redirect request fields."""

from clicktrail.classifiers.referrer import ReferrerCategory, categorize_referrer
from clicktrail.classifiers.user_agent import (
    BotType,
    Device,
    UserAgentInfo,
    classify_user_agent,
)

__all__ = [
    "BotType",
    "Device",
    "ReferrerCategory",
    "UserAgentInfo",
    "categorize_referrer",
    "classify_user_agent",
]
