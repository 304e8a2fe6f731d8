"""Parsing of human membership durations such as ``12h``, ``7d`` or ``perm``."""

from __future__ import annotations

import re

from .constants import MS_PER_DAY, MS_PER_HOUR, MS_PER_MINUTE, MS_PER_SECOND, PERMANENT_DURATION_TOKENS
from .errors import InvalidDurationFormat
from .utils.error_messages import get_error_message

_DURATION_PATTERN = re.compile(r"(\d+)([hdms])", re.IGNORECASE)

UNIT_MS = {
    "h": MS_PER_HOUR,
    "d": MS_PER_DAY,
    "m": MS_PER_MINUTE,
    "s": MS_PER_SECOND,
}


def is_permanent(duration: str) -> bool:
    return duration.strip().lower() in PERMANENT_DURATION_TOKENS


def parse_duration(duration: str) -> int | None:
    """
    Convert a duration string to milliseconds.

    Returns ``None`` for the permanent token. Only a single unit is accepted,
    so ``1h30m`` is rejected.

    Raises:
        InvalidDurationFormat: If the string is not ``<integer><h|d|m|s>``.
    """
    if not isinstance(duration, str):
        raise InvalidDurationFormat(str(duration), get_error_message("invalid_duration", duration=duration))

    if is_permanent(duration):
        return None

    match = _DURATION_PATTERN.fullmatch(duration.strip())
    if not match:
        raise InvalidDurationFormat(duration, get_error_message("invalid_duration", duration=duration))

    value = int(match.group(1))
    return value * UNIT_MS[match.group(2).lower()]


def format_duration(duration: str | None) -> str:
    """Display value for audit records."""
    if not duration:
        return "N/A"
    if is_permanent(duration):
        return "Permanent"
    return duration.strip()
