"""Referrer categorisation into coarse traffic sources.

The referrer is lowercased and matched by substring against curated domain
lists, checked in the order social, search, email, ads. The order is part
of the behaviour: ``mail.google.com`` counts as search because ``google.``
is a search marker, and ``facebook.com/tr`` counts as social.
"""

from enum import Enum


class ReferrerCategory(str, Enum):
    """Traffic source classification."""

    DIRECT = "direct"
    SOCIAL = "social"
    SEARCH = "search"
    EMAIL = "email"
    ADS = "ads"
    OTHER = "other"


SOCIAL_MARKERS = (
    "facebook.com",
    "fb.me",
    "twitter.com",
    "//x.com",
    "//t.co/",
    "linkedin.com",
    "lnkd.in",
    "instagram.com",
    "tiktok.com",
    "youtube.com",
    "youtu.be",
    "reddit.com",
    "pinterest.com",
    "threads.net",
    "tumblr.com",
    "mastodon.social",
    "snapchat.com",
    "discord.com",
    "//t.me/",
    "vk.com",
    "weibo.com",
)

SEARCH_MARKERS = (
    "google.",
    "bing.com",
    "yahoo.com",
    "duckduckgo.com",
    "baidu.com",
    "yandex.",
    "ecosia.org",
    "search.brave.com",
    "startpage.com",
    "naver.com",
    "seznam.cz",
)

EMAIL_MARKERS = (
    "mail.",
    "gmail.com",
    "outlook.",
    "yahoo.com/mail",
    "protonmail.",
    "proton.me",
    "campaign-archive.com",
    "list-manage.com",
    "newsletter",
)

ADS_MARKERS = (
    "//ads.",
    ".ads.",
    "doubleclick.",
    "googleadservices.",
    "googlesyndication.",
    "adservice.",
    "facebook.com/tr",
    "adnxs.com",
    "taboola.com",
    "outbrain.com",
)

CATEGORY_RULES: tuple[tuple[ReferrerCategory, tuple[str, ...]], ...] = (
    (ReferrerCategory.SOCIAL, SOCIAL_MARKERS),
    (ReferrerCategory.SEARCH, SEARCH_MARKERS),
    (ReferrerCategory.EMAIL, EMAIL_MARKERS),
    (ReferrerCategory.ADS, ADS_MARKERS),
)


def categorize_referrer(referrer: str | None) -> ReferrerCategory:
    """Categorize a referrer URL. Never raises."""
    if not referrer or not referrer.strip():
        return ReferrerCategory.DIRECT

    value = referrer.strip().lower()
    for category, markers in CATEGORY_RULES:
        if any(marker in value for marker in markers):
            return category
    return ReferrerCategory.OTHER
