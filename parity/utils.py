"""Small helpers shared by the pipeline stages."""

from datetime import datetime, timezone


def parse_timestamp(value):
    """Parse an ISO-8601 string (with optional trailing Z) into aware UTC, or None."""
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def slug_from_key(normalized_key: str) -> str:
    """Last path segment of a normalized key ("" for the root)."""
    parts = [p for p in normalized_key.split("/") if p]
    return parts[-1] if parts else ""
