"""User-agent classification.

Coarse device / OS / browser families for the operation log. Pure
string matching, no lookups.
"""

from dataclasses import dataclass
from typing import Optional

UNKNOWN = "unknown"

# Order matters: the first matching token wins
_OS_TOKENS = (
    ("ipad", "ios"),
    ("iphone", "ios"),
    ("ipod", "ios"),
    ("android", "android"),
    ("windows", "windows"),
    ("cros", "chromeos"),
    ("mac os x", "macos"),
    ("macintosh", "macos"),
    ("linux", "linux"),
)

_BROWSER_TOKENS = (
    ("edg/", "edge"),
    ("edga/", "edge"),
    ("edgios/", "edge"),
    ("opr/", "opera"),
    ("opera", "opera"),
    ("samsungbrowser", "samsung"),
    ("firefox/", "firefox"),
    ("fxios/", "firefox"),
    ("crios/", "chrome"),
    ("chrome/", "chrome"),
    ("chromium/", "chrome"),
    ("safari/", "safari"),
)

_BOT_TOKENS = ("bot", "spider", "crawler", "curl/", "wget/", "python-requests", "httpx")


@dataclass(frozen=True)
class ClientFingerprint:
    device_class: str = UNKNOWN
    os_family: str = UNKNOWN
    browser_family: str = UNKNOWN

    @property
    def label(self) -> str:
        """Compact ``device/os/browser`` form stored as deviceInfo."""
        return f"{self.device_class}/{self.os_family}/{self.browser_family}"


def _match(ua: str, tokens: tuple[tuple[str, str], ...]) -> str:
    for token, family in tokens:
        if token in ua:
            return family
    return UNKNOWN


def _device_class(ua: str, os_family: str) -> str:
    if any(token in ua for token in _BOT_TOKENS):
        return "bot"
    if "ipad" in ua or "tablet" in ua:
        return "tablet"
    if os_family == "android":
        # Android tablets omit the "Mobile" token
        return "mobile" if "mobile" in ua else "tablet"
    if "mobi" in ua or "iphone" in ua or "ipod" in ua:
        return "mobile"
    if os_family in ("windows", "macos", "linux", "chromeos"):
        return "desktop"
    return UNKNOWN


def classify_user_agent(user_agent: Optional[str]) -> ClientFingerprint:
    """Classify a raw User-Agent header.

    Args:
        user_agent: Header value, possibly empty

    Returns:
        ClientFingerprint, with "unknown" for anything not recognised
    """
    if not user_agent or not user_agent.strip():
        return ClientFingerprint()

    ua = user_agent.lower()
    os_family = _match(ua, _OS_TOKENS)
    return ClientFingerprint(
        device_class=_device_class(ua, os_family),
        os_family=os_family,
        browser_family=_match(ua, _BROWSER_TOKENS),
    )
