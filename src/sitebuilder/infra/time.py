"""Time utilities for consistent timestamp handling."""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Return current UTC timestamp (timezone-aware)."""
    return datetime.now(timezone.utc)


def step_id_for(moment: datetime | None = None) -> str:
    """Format a moment (default: now, UTC) as a 14-digit step id."""
    moment = moment or utc_now()
    return moment.astimezone(timezone.utc).strftime("%Y%m%d%H%M%S")
