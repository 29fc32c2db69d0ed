"""
Parsing and formatting of in-game timer strings.

Timers appear as "m:ss", "h:mm:ss", optionally followed by a fraction
when precise timing is enabled ("1:23.40"). Invalid strings yield None.
"""
from __future__ import annotations

import logging
import re
from datetime import timedelta
from typing import Optional

logger = logging.getLogger(__name__)

# Matches what the duration regexes capture: (\d*:*\d+:\d+\.?\d*)
_TIMER_RE = re.compile(
    r"^(?:(?P<hours>\d+):)?(?P<minutes>\d+):(?P<seconds>\d+)(?:\.(?P<fraction>\d*))?$"
)


def parse_duration(text: Optional[str]) -> Optional[timedelta]:
    """
    Parse a game timer into a timedelta.

    Args:
        text: Timer text such as "1:02:03.40" or "12:34"

    Returns:
        The parsed duration, or None if the text is not a valid timer
    """
    if not text:
        return None

    match = _TIMER_RE.match(text.strip())
    if not match:
        logger.debug(f"Ignoring malformed duration: {text!r}")
        return None

    hours = int(match.group("hours") or 0)
    minutes = int(match.group("minutes"))
    seconds = int(match.group("seconds"))

    fraction = match.group("fraction") or ""
    # "1:23.4" means 400ms, not 4ms
    millis = int(fraction[:3].ljust(3, "0")) if fraction else 0

    return timedelta(hours=hours, minutes=minutes, seconds=seconds, milliseconds=millis)


def format_duration(duration: Optional[timedelta], precise: bool = False) -> str:
    """
    Format a duration the way the game displays it.

    Hours are only shown when non-zero. With precise=True, hundredths of a
    second are appended ("01:23.40").

    Args:
        duration: Duration to format (None formats as zero)
        precise: Include hundredths of a second

    Returns:
        Formatted timer string
    """
    total_ms = int(round((duration or timedelta(0)).total_seconds() * 1000))
    hours, rem = divmod(total_ms, 3_600_000)
    minutes, rem = divmod(rem, 60_000)
    seconds, millis = divmod(rem, 1000)

    text = f"{hours:02d}:" if hours > 0 else ""
    text += f"{minutes:02d}:{seconds:02d}"
    if precise:
        text += f".{millis // 10:02d}"
    return text
