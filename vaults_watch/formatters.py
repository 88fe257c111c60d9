"""Formatting and conversion utilities."""

import time
from decimal import Decimal, localcontext

from vaults_watch.constants import INVALID_TIMESTAMP_TEXT, MAX_CLOCK_SKEW_SECONDS, UNKNOWN_TEXT

# Enough digits for any uint256 without rounding.
_EXACT_PRECISION = 100


def as_int(value, *, default: int = 0) -> int:
    """Convert value to int, handling various types."""
    if value is None:
        return default
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        v = value.strip()
        if not v:
            return default
        if v.startswith("0x"):
            return int(v, 16)
        return int(v)
    return int(value)


def plain_decimal(value: Decimal) -> str:
    """Render a Decimal without exponent and without trailing zeros."""
    text = format(value.normalize(), "f")
    return "0" if text in ("-0", "") else text


def format_bps(raw) -> str:
    """Format basis points as a percentage number: 250 -> "2.5"."""
    with localcontext() as ctx:
        ctx.prec = _EXACT_PRECISION
        return plain_decimal(Decimal(as_int(raw)) / Decimal(100))


def display_amount(raw, decimals: int) -> str:
    """Scale a raw token magnitude by 10**decimals: (500, 2) -> "5"."""
    if decimals < 0:
        raise ValueError("decimals must be >= 0")
    if decimals == 0:
        return str(as_int(raw))
    with localcontext() as ctx:
        ctx.prec = _EXACT_PRECISION
        return plain_decimal(Decimal(as_int(raw)).scaleb(-decimals))


def format_fee(fee_bps: int | None) -> str:
    """Format an optional registry fee (basis points)."""
    if fee_bps is None:
        return UNKNOWN_TEXT
    return format_bps(fee_bps)


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}{'' if count == 1 else 's'} ago"


def last_report_text(timestamp, *, now: int | None = None) -> str:
    """
    Coarse human-relative age of a unix timestamp ("3 days ago").

    A zero/missing timestamp is "unknown"; a timestamp further in the future than
    MAX_CLOCK_SKEW_SECONDS is reported as invalid instead of as a negative age.
    """
    ts = as_int(timestamp)
    if ts <= 0:
        return UNKNOWN_TEXT
    current = int(time.time()) if now is None else int(now)
    elapsed = current - ts
    if elapsed < -MAX_CLOCK_SKEW_SECONDS:
        return INVALID_TIMESTAMP_TEXT
    if elapsed < 60:
        return "just now"
    if elapsed < 3600:
        return _plural(elapsed // 60, "minute")
    if elapsed < 86400:
        return _plural(elapsed // 3600, "hour")
    return _plural(elapsed // 86400, "day")
