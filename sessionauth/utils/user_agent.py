"""Coarse browser detection for refresh token metadata."""


class BrowserFamily:
    """Browser labels recorded with each refresh token grant"""

    CHROME = "Chrome"
    FIREFOX = "Firefox"
    SAFARI = "Safari"
    EDGE = "Edge"
    OTHER = "Other"


def detect_browser_family(user_agent: str | None) -> str:
    """
    Map a User-Agent header to a browser family label.

    Order matters: Edge user agents also mention Chrome and Safari, and
    Chrome user agents also mention Safari.
    """
    if not user_agent:
        return BrowserFamily.OTHER
    if "Edg" in user_agent:
        return BrowserFamily.EDGE
    if "Firefox" in user_agent:
        return BrowserFamily.FIREFOX
    if "Chrome" in user_agent:
        return BrowserFamily.CHROME
    if "Safari" in user_agent:
        return BrowserFamily.SAFARI
    return BrowserFamily.OTHER
