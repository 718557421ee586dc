"""Filesystem and clock helpers shared across sessionvault."""

from __future__ import annotations

from datetime import datetime, tzinfo
from pathlib import Path
from zoneinfo import ZoneInfo


def ensure_dir(path: Path) -> Path:
    """Create *path* (and missing parents) if needed and return it."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def append_text(path: Path, content: str, *, encoding: str = "utf-8") -> None:
    """Append *content* to *path*, creating the file if absent."""
    with open(path, "a", encoding=encoding) as f:
        f.write(content)
        f.flush()


def resolve_timezone(timezone: str | tzinfo | None) -> tzinfo | None:
    """Turn an IANA name into a tzinfo; ``None`` means system local time."""
    if timezone is None or isinstance(timezone, tzinfo):
        return timezone
    return ZoneInfo(timezone)


def to_local(instant: datetime, tz: tzinfo | None = None) -> datetime:
    """Express *instant* as an aware datetime in *tz* (system local when None).

    Naive datetimes are taken to be system local time.
    """
    return instant.astimezone(tz)


def format_date_stamp(instant: datetime, tz: tzinfo | None = None) -> str:
    return to_local(instant, tz).strftime("%Y-%m-%d")


def format_time_stamp(instant: datetime, tz: tzinfo | None = None) -> str:
    return to_local(instant, tz).strftime("%H:%M:%S")


def ensure_aware(instant: datetime) -> datetime:
    """Attach the system local zone to a naive datetime; aware values pass through."""
    return instant if instant.tzinfo is not None else instant.astimezone()
