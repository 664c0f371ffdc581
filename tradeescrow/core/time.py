"""
tradeescrow/core/time.py

Wall-clock timestamps for journal records.

Wire format: YYYY-MM-DDTHH:MM:SS.mmmZ
             (milliseconds, explicit Z, no +00:00, no microseconds)

Trade lifecycle timestamps are NOT produced here. Those are Unix seconds
read from the injected Clock (core/clock.py), so timeouts stay testable.
"""

from datetime import datetime, timezone


def journal_timestamp() -> str:
    """
    Return current UTC time in journal wire format.
    Format: YYYY-MM-DDTHH:MM:SS.mmmZ  (exactly 3 fractional digits, Z suffix)
    """
    now = datetime.now(timezone.utc)
    ms  = now.microsecond // 1000
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{ms:03d}Z"


def format_unix(ts: int) -> str:
    """Render a Unix-seconds trade timestamp as a readable UTC string."""
    return datetime.fromtimestamp(ts, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def parse_journal_timestamp(value: str) -> float:
    """
    Inverse of journal_timestamp(): wire format → Unix seconds.
    Raises ValueError if value is not in wire format.
    """
    if not isinstance(value, str) or not value.endswith("Z"):
        raise ValueError(f"timestamp {value!r} is not YYYY-MM-DDTHH:MM:SS.mmmZ")
    parsed = datetime.strptime(value, "%Y-%m-%dT%H:%M:%S.%fZ")
    return parsed.replace(tzinfo=timezone.utc).timestamp()
