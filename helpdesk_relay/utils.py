"""
Utility functions for the relay.
"""

import re
from datetime import datetime, timezone
from typing import Optional

UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)

_UNSAFE_FILENAME_CHARS = re.compile(r'[/\\?%*:|"<>]')


def looks_like_uuid(value: Optional[str]) -> bool:
    """Return True when value has the shape of an internal record id."""
    return bool(value) and bool(UUID_PATTERN.match(value))


def sanitize_filename(filename: str) -> str:
    """Replace path separators and shell-hostile characters with underscores."""
    return _UNSAFE_FILENAME_CHARS.sub("_", filename)


def isoformat(value: Optional[datetime]) -> Optional[str]:
    """
    Serialize a timestamp as ISO-8601 UTC with a Z suffix.

    SQLite hands back naive datetimes; those are treated as UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"
