import re
import time
from datetime import datetime, timezone
from typing import Any, Optional

DAY_MS = 24 * 60 * 60 * 1000

# Postgres trims trailing zeros from fractional seconds; fromisoformat wants 3 or 6 digits.
_FRACTION = re.compile(r"\.(\d+)")


def now_ms() -> int:
    return int(time.time() * 1000)


def to_iso(value_ms: int) -> str:
    value = datetime.fromtimestamp(value_ms / 1000, tz=timezone.utc)
    return value.isoformat().replace("+00:00", "Z")


def now_iso() -> str:
    return to_iso(now_ms())


def from_iso(value: Any, default: Optional[int] = None) -> int:
    """Parse a wire timestamp into epoch milliseconds.

    Accepts ISO strings (with ``Z`` or an offset) and raw numbers. Anything that does
    not parse falls back to ``default``, or to the current time.
    """
    fallback = now_ms() if default is None else default
    if value is None or value == "":
        return fallback
    if isinstance(value, (int, float)):
        return int(value)
    text = _FRACTION.sub(lambda match: "." + match.group(1)[:6].ljust(6, "0"), str(value).replace("Z", "+00:00"), count=1)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return fallback
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp() * 1000)
