from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone


def as_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime (naive values are taken to be UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class PositionReport:
    time: datetime
    lat: float | None
    lon: float | None
    sog: float | None = None  # knots
    cog: float | None = None  # degrees
    tws: float | None = None
    twa: float | None = None
    twd: float | None = None
    hdop: float | None = None

