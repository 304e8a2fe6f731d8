"""Discord timestamp helpers."""

from datetime import datetime, timezone


def discord_timestamp(dt: datetime, style: str = "f") -> str:
    """Return Discord formatted timestamp."""
    if dt.tzinfo is None:
        aware = dt.replace(tzinfo=timezone.utc)
    else:
        aware = dt.astimezone(timezone.utc)
    timestamp = int(aware.timestamp())
    return f"<t:{timestamp}:{style}>"


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(datetime.now(timezone.utc).timestamp() * 1000)


def from_ms(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
