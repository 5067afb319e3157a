"""
Core utility functions for Briefrr
"""
import logging
import math
import time
from typing import Optional


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds"""
    return int(time.time() * 1000)


def format_time_remaining(ms: int) -> str:
    """
    Render a cooldown as human-readable text.

    Seconds are shown below one minute, otherwise whole minutes rounded up:
    "1 second", "3 seconds", "1 minute", "2 minutes".
    """
    seconds = math.ceil(ms / 1000)

    if seconds < 60:
        return f"{seconds} second{'' if seconds == 1 else 's'}"

    minutes = math.ceil(seconds / 60)
    return f"{minutes} minute{'' if minutes == 1 else 's'}"


def mask_api_key(api_key: Optional[str]) -> str:
    """Mask an API key for display, keeping the last four characters"""
    if not api_key:
        return "Not set"
    return "••••••••" + api_key[-4:]


def truncate_title(title: str, limit: int = 55) -> str:
    """Shorten a page title for compact display"""
    if len(title) <= limit:
        return title
    return title[:limit - 3] + "..."


def configure_logging(level: str = "INFO", handler: Optional[logging.Handler] = None) -> None:
    """Configure root logging for the CLI and scripts (stderr unless a handler is given)"""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        handlers=[handler] if handler is not None else None
    )
