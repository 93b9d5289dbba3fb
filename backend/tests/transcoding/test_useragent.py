"""Tests for user-agent classification."""

import pytest
from hypothesis import given, settings, strategies as st

from pinworker.modules.transcoding.useragent import ClientFingerprint, classify_user_agent

IPHONE_SAFARI = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_4 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.4 Mobile/15E148 Safari/604.1"
)
ANDROID_CHROME = (
    "Mozilla/5.0 (Linux; Android 14; Pixel 8) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Mobile Safari/537.36"
)
ANDROID_TABLET = (
    "Mozilla/5.0 (Linux; Android 13; SM-X700) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/123.0.0.0 Safari/537.36"
)
WINDOWS_EDGE = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36 Edg/124.0.2478.51"
)
MAC_FIREFOX = "Mozilla/5.0 (Macintosh; Intel Mac OS X 14.4; rv:125.0) Gecko/20100101 Firefox/125.0"
IPAD_SAFARI = (
    "Mozilla/5.0 (iPad; CPU OS 16_6 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/16.6 Mobile/15E148 Safari/604.1"
)


class TestClassifyUserAgent:
    """Device, OS and browser families from common user agents."""

    @pytest.mark.parametrize(
        "user_agent, expected",
        [
            (IPHONE_SAFARI, ClientFingerprint("mobile", "ios", "safari")),
            (ANDROID_CHROME, ClientFingerprint("mobile", "android", "chrome")),
            (ANDROID_TABLET, ClientFingerprint("tablet", "android", "chrome")),
            (WINDOWS_EDGE, ClientFingerprint("desktop", "windows", "edge")),
            (MAC_FIREFOX, ClientFingerprint("desktop", "macos", "firefox")),
            (IPAD_SAFARI, ClientFingerprint("tablet", "ios", "safari")),
            ("curl/8.5.0", ClientFingerprint("bot", "unknown", "unknown")),
        ],
    )
    def test_known_agents(self, user_agent, expected) -> None:
        assert classify_user_agent(user_agent) == expected

    @pytest.mark.parametrize("user_agent", [None, "", "   "])
    def test_blank_is_unknown(self, user_agent) -> None:
        assert classify_user_agent(user_agent) == ClientFingerprint()

    def test_label(self) -> None:
        assert classify_user_agent(IPHONE_SAFARI).label == "mobile/ios/safari"

    @given(user_agent=st.text(max_size=300))
    @settings(max_examples=200)
    def test_never_raises_and_always_labels(self, user_agent) -> None:
        fingerprint = classify_user_agent(user_agent)

        assert fingerprint.label.count("/") == 2
        assert fingerprint.device_class in {"bot", "tablet", "mobile", "desktop", "unknown"}
