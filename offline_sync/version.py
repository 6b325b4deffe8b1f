"""
Version markers for last-write-wins conflict detection.

A version marker is a row field (``updated_at`` by default) recording when
the row was last written. Markers arrive in whatever shape the remote store
produces, so they are normalised to epoch milliseconds before comparing:

- int/float: already epoch milliseconds
- str: ISO-8601 timestamp (a trailing ``Z`` is accepted) or a numeric string
- datetime: naive values are taken as UTC
"""

from datetime import datetime, timezone
from typing import Any

DEFAULT_VERSION_FIELD = "updated_at"


def parse_version_marker(value: Any) -> float | None:
    """Normalise a version marker to epoch milliseconds.

    Args:
        value: Raw marker value from a row

    Returns:
        Milliseconds since the epoch, or None if missing or unparseable
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        return float(value)

    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.timestamp() * 1000

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return float(text)
        except ValueError:
            pass
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return parse_version_marker(datetime.fromisoformat(text))
        except ValueError:
            return None

    return None


def is_server_newer(
    server_row: dict[str, Any],
    local_row: dict[str, Any],
    version_field: str = DEFAULT_VERSION_FIELD,
) -> bool:
    """Check whether the server copy of a row is strictly newer.

    A queued row without a usable marker never conflicts. A server row
    without one, checked against a marked local row, is treated as
    written just now and so counts as newer.

    Args:
        server_row: Row as currently stored remotely
        local_row: Row as recorded in the queued mutation
        version_field: Name of the version marker field

    Returns:
        True if the server copy must not be overwritten blindly
    """
    server_version = parse_version_marker(server_row.get(version_field))
    local_version = parse_version_marker(local_row.get(version_field))

    if local_version is None:
        return False
    if server_version is None:
        return True

    return server_version > local_version
