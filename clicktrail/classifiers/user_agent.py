"""User-agent classification: device, browser, OS and bot detection.

Browser and OS family and version come from the `user_agents` parser. Bot
signatures, bot buckets and the smart-TV and wearable device classes are
ordered rule lists evaluated first-match-wins. Bot detection runs
independently of the browser: a user agent carrying both a browser marker
and a bot signature is a bot.
"""

import re
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache

from user_agents import parse as parse_user_agent
from user_agents.parsers import UserAgent

from clicktrail.classifiers.rules import Rule, first_match, rule

UNKNOWN = "Unknown"


class Device(str, Enum):
    """Device class of a client."""

    MOBILE = "mobile"
    TABLET = "tablet"
    DESKTOP = "desktop"
    SMART_TV = "smart-tv"
    WEARABLE = "wearable"
    UNKNOWN = "unknown"


class BotType(str, Enum):
    """Bucket of an automated agent."""

    SEARCH_ENGINE = "search-engine"
    SOCIAL_MEDIA = "social-media"
    MONITORING = "monitoring"
    SCRAPER = "scraper"
    OTHER = "other"


@dataclass(frozen=True)
class UserAgentInfo:
    """Parsed user agent."""

    device: Device = Device.UNKNOWN
    browser: str = UNKNOWN
    browser_version: str = UNKNOWN
    os: str = UNKNOWN
    os_version: str = UNKNOWN
    is_bot: bool = False
    bot_type: BotType | None = None


BOT_SIGNATURES: tuple[re.Pattern[str], ...] = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"bot",
        r"crawl",
        r"spider",
        r"scraper",
        r"scrapy",
        r"slurp",
        r"facebookexternalhit",
        r"whatsapp",
        r"telegram",
        r"skype",
        r"monitor",
        r"uptime",
        r"pingdom",
        r"newrelic",
        r"statuscake",
        r"headlesschrome",
        r"phantomjs",
        r"python-requests",
        r"python-urllib",
        r"curl/",
        r"wget/",
        r"go-http-client",
        r"httpclient",
        r"java/",
    )
)

BOT_TYPE_RULES: tuple[Rule[BotType], ...] = (
    rule(
        r"googlebot|bingbot|slurp|duckduckbot|baiduspider|yandexbot|applebot|"
        r"sogou|exabot|seznambot|petalbot",
        BotType.SEARCH_ENGINE,
    ),
    rule(
        r"facebookexternalhit|facebot|twitterbot|linkedinbot|whatsapp|telegram|"
        r"skype|slackbot|discordbot|pinterestbot|redditbot|embedly|vkshare",
        BotType.SOCIAL_MEDIA,
    ),
    rule(
        r"monitor|uptime|pingdom|newrelic|statuscake|site24x7|datadog",
        BotType.MONITORING,
    ),
    rule(
        r"scraper|scrapy|crawl|spider|headlesschrome|phantomjs|python-requests|"
        r"python-urllib|curl/|wget/|go-http-client|httpclient|java/",
        BotType.SCRAPER,
    ),
)

# Classes the parser's mobile/tablet/pc flags do not cover; checked first
DEVICE_RULES: tuple[Rule[Device], ...] = (
    rule(r"watch|wearable|wear ?os", Device.WEARABLE),
    rule(
        r"smart-?tv|googletv|google tv|appletv|apple tv|hbbtv|netcast|roku|crkey|"
        r"bravia|aft[bmst]\b|\btv\b",
        Device.SMART_TV,
    ),
)

# Parser family -> reported name; the mobile variants fold into their browser
BROWSER_NAMES = {
    "Chrome Mobile": "Chrome",
    "Chrome Mobile iOS": "Chrome",
    "Chrome Mobile WebView": "Chrome",
    "Mobile Safari": "Safari",
    "Mobile Safari UI/WKWebView": "Safari",
    "Firefox Mobile": "Firefox",
    "Firefox iOS": "Firefox",
    "Edge Mobile": "Edge",
    "Opera Mini": "Opera",
    "Opera Mobile": "Opera",
    "IE": "Internet Explorer",
    "IE Mobile": "Internet Explorer",
}

OS_NAMES = {
    "Mac OS X": "macOS",
}

# Family the parser reports when nothing matched
PARSER_UNKNOWN = "Other"


def is_bot(user_agent: str) -> bool:
    """Check a user agent against the known bot signatures."""
    return any(pattern.search(user_agent) for pattern in BOT_SIGNATURES)


def bot_type(user_agent: str) -> BotType:
    """Bucket a bot user agent; assumes ``is_bot`` already matched."""
    matched = first_match(BOT_TYPE_RULES, user_agent)
    return matched[0].category if matched else BotType.OTHER


def _device(user_agent: str, parsed: UserAgent) -> Device:
    matched = first_match(DEVICE_RULES, user_agent)
    if matched:
        return matched[0].category
    if parsed.is_tablet:
        return Device.TABLET
    if parsed.is_mobile:
        return Device.MOBILE
    if parsed.is_pc:
        return Device.DESKTOP
    return Device.UNKNOWN


def _family(family: str | None, names: dict[str, str]) -> str:
    if not family or family == PARSER_UNKNOWN:
        return UNKNOWN
    return names.get(family, family)


def _version(family: str, version: str | None) -> str:
    if family == UNKNOWN or not version:
        return UNKNOWN
    return version


@lru_cache(maxsize=4096)
def classify_user_agent(user_agent: str | None) -> UserAgentInfo:
    """Classify a raw user-agent string.

    Never raises; empty or missing input yields an all-unknown, non-bot
    result.
    """
    if not user_agent or not user_agent.strip():
        return UserAgentInfo()

    parsed = parse_user_agent(user_agent)
    browser = _family(parsed.browser.family, BROWSER_NAMES)
    os_name = _family(parsed.os.family, OS_NAMES)
    detected_bot = is_bot(user_agent)

    return UserAgentInfo(
        device=_device(user_agent, parsed),
        browser=browser,
        browser_version=_version(browser, parsed.browser.version_string),
        os=os_name,
        os_version=_version(os_name, parsed.os.version_string),
        is_bot=detected_bot,
        bot_type=bot_type(user_agent) if detected_bot else None,
    )
