"""Tests for user agent classification."""

import pytest

from clicktrail.classifiers import BotType, Device, UserAgentInfo, classify_user_agent

CHROME_WINDOWS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
SAFARI_IPHONE = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_1 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.1 Mobile/15E148 Safari/604.1"
)
SAFARI_IPAD = (
    "Mozilla/5.0 (iPad; CPU OS 16_6 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/16.6 Mobile/15E148 Safari/604.1"
)
CHROME_ANDROID_PHONE = (
    "Mozilla/5.0 (Linux; Android 14; Pixel 8) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.6099.144 Mobile Safari/537.36"
)
CHROME_ANDROID_TABLET = (
    "Mozilla/5.0 (Linux; Android 13; SM-X700) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36"
)
FIREFOX_MAC = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10.15; rv:121.0) Gecko/20100101 Firefox/121.0"
)
EDGE_WINDOWS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36 Edg/120.0.2210.91"
)
SAMSUNG_TV = (
    "Mozilla/5.0 (SMART-TV; Linux; Tizen 6.0) AppleWebKit/538.1 "
    "(KHTML, like Gecko) Version/6.0 TV Safari/538.1"
)
GOOGLEBOT = "Mozilla/5.0 (compatible; Googlebot/2.1; +http://www.google.com/bot.html)"
BINGBOT_CHROME = (
    "Mozilla/5.0 AppleWebKit/537.36 (KHTML, like Gecko; compatible; bingbot/2.0; "
    "+http://www.bing.com/bingbot.htm) Chrome/116.0.1938.76 Safari/537.36"
)


def test_desktop_chrome_on_windows():
    info = classify_user_agent(CHROME_WINDOWS)
    assert info.device == Device.DESKTOP
    assert info.browser == "Chrome"
    assert info.browser_version.startswith("120.")
    assert info.os == "Windows"
    assert info.os_version == "10"
    assert info.is_bot is False
    assert info.bot_type is None


def test_iphone_safari():
    info = classify_user_agent(SAFARI_IPHONE)
    assert info.device == Device.MOBILE
    assert info.browser == "Safari"
    assert info.browser_version == "17.1"
    assert info.os == "iOS"
    assert info.os_version == "17.1"


def test_ipad_is_a_tablet():
    info = classify_user_agent(SAFARI_IPAD)
    assert info.device == Device.TABLET
    assert info.os == "iOS"
    assert info.os_version == "16.6"


def test_android_phone_and_tablet():
    phone = classify_user_agent(CHROME_ANDROID_PHONE)
    tablet = classify_user_agent(CHROME_ANDROID_TABLET)

    assert phone.device == Device.MOBILE
    assert phone.os == "Android"
    assert phone.os_version == "14"
    assert tablet.device == Device.TABLET
    assert tablet.os == "Android"


def test_firefox_on_macos():
    info = classify_user_agent(FIREFOX_MAC)
    assert info.device == Device.DESKTOP
    assert info.browser == "Firefox"
    assert info.browser_version == "121.0"
    assert info.os == "macOS"
    assert info.os_version == "10.15"


def test_edge_wins_over_chrome_marker():
    info = classify_user_agent(EDGE_WINDOWS)
    assert info.browser == "Edge"
    assert info.browser_version.startswith("120.0")


def test_smart_tv():
    assert classify_user_agent(SAMSUNG_TV).device == Device.SMART_TV


@pytest.mark.parametrize(
    "user_agent, expected",
    [
        (GOOGLEBOT, BotType.SEARCH_ENGINE),
        ("facebookexternalhit/1.1 (+http://www.facebook.com/externalhit_uatext.php)", BotType.SOCIAL_MEDIA),
        ("Twitterbot/1.0", BotType.SOCIAL_MEDIA),
        ("Mozilla/5.0 (compatible; UptimeRobot/2.0; http://www.uptimerobot.com/)", BotType.MONITORING),
        ("Pingdom.com_bot_version_1.4_(http://www.pingdom.com/)", BotType.MONITORING),
        ("curl/8.4.0", BotType.SCRAPER),
        ("python-requests/2.31.0", BotType.SCRAPER),
        ("Scrapy/2.11.0 (+https://scrapy.org)", BotType.SCRAPER),
        ("SomeRandomBot/0.1", BotType.OTHER),
    ],
)
def test_bots_are_detected_and_bucketed(user_agent, expected):
    info = classify_user_agent(user_agent)
    assert info.is_bot is True
    assert info.bot_type == expected


def test_bot_signature_beats_browser_marker():
    info = classify_user_agent(BINGBOT_CHROME)
    assert info.is_bot is True
    assert info.bot_type == BotType.SEARCH_ENGINE


@pytest.mark.parametrize("user_agent", [None, "", "   "])
def test_missing_user_agent_is_all_unknown(user_agent):
    assert classify_user_agent(user_agent) == UserAgentInfo()


@pytest.mark.parametrize("user_agent", ["!!!", "x" * 5000])
def test_unrecognised_agent_is_unknown(user_agent):
    info = classify_user_agent(user_agent)
    assert info.device == Device.UNKNOWN
    assert info.browser == "Unknown"
    assert info.browser_version == "Unknown"
    assert info.os == "Unknown"
    assert info.os_version == "Unknown"
    assert info.is_bot is False


def test_garbage_never_raises():
    info = classify_user_agent("Mozilla/5.0 (☃; \x00)")
    assert info.device in set(Device)
    assert info.is_bot is False


def test_mobile_browser_variants_fold_into_their_browser():
    assert classify_user_agent(SAFARI_IPHONE).browser == "Safari"
    assert classify_user_agent(CHROME_ANDROID_PHONE).browser == "Chrome"


def test_wearable():
    watch = (
        "Mozilla/5.0 (Linux; Android 11; SM-R890 Build/RP1A.200720.012; wv) "
        "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/110.0.0.0 Watch Safari/537.36"
    )
    assert classify_user_agent(watch).device == Device.WEARABLE
