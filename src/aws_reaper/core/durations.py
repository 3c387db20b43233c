"""Go-style duration strings ("90s", "1h30m", "1.5h") used in config and filters."""
import re
from datetime import timedelta

_UNITS = {
    "ns": timedelta(microseconds=0.001),
    "us": timedelta(microseconds=1),
    "µs": timedelta(microseconds=1),
    "ms": timedelta(milliseconds=1),
    "s": timedelta(seconds=1),
    "m": timedelta(minutes=1),
    "h": timedelta(hours=1),
}

_COMPONENT = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


def parse_duration(text: str) -> timedelta:
    """Parse a duration such as ``"24h"`` or ``"1h30m"``.

    Raises:
        ValueError: If the text is not a valid duration
    """
    if not isinstance(text, str):
        raise ValueError(f"invalid duration {text!r}")

    value = text.strip()
    sign = 1
    if value[:1] in ("+", "-"):
        sign = -1 if value[0] == "-" else 1
        value = value[1:]

    if value == "0":
        return timedelta(0)
    if not value:
        raise ValueError(f"invalid duration {text!r}")

    total = timedelta(0)
    position = 0
    for match in _COMPONENT.finditer(value):
        if match.start() != position:
            raise ValueError(f"invalid duration {text!r}")
        total += float(match.group(1)) * _UNITS[match.group(2)]
        position = match.end()

    if position != len(value):
        raise ValueError(f"invalid duration {text!r}")

    return sign * total


def format_duration(duration: timedelta) -> str:
    """Format a timedelta as a Go-style duration, e.g. ``"36h0m0s"``."""
    seconds = int(duration.total_seconds())
    sign = "-" if seconds < 0 else ""
    seconds = abs(seconds)
    hours, remainder = divmod(seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    if hours:
        return f"{sign}{hours}h{minutes}m{seconds}s"
    if minutes:
        return f"{sign}{minutes}m{seconds}s"
    return f"{sign}{seconds}s"
