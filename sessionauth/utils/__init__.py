"""
Utility functions
"""

from sessionauth.utils.clock import from_epoch_ms, isoformat_z, parse_iso, utc_now
from sessionauth.utils.user_agent import detect_browser_family

__all__ = [
    "detect_browser_family",
    "from_epoch_ms",
    "isoformat_z",
    "parse_iso",
    "utc_now",
]
