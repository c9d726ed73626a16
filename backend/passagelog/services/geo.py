"""Geodesic distance and unit conversions used by passage detection."""
from __future__ import annotations

from math import atan2, cos, pi, radians, sin, sqrt
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from passagelog.services.position import PositionReport

EARTH_RADIUS_M = 6371000.0
MPS_TO_KNOTS = 1.9438444924574


def degrees_to_radians(degrees: float) -> float:
    return degrees * pi / 180


def radians_to_degrees(rads: float) -> int:
    """Convert radians to whole degrees."""
    return round(rads * 180 / pi)


def mps_to_knots(mps: float) -> float:
    """Convert metres per second to knots, rounded to one decimal place."""
    return round(MPS_TO_KNOTS * mps * 10) / 10


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in metres between two lat/lon points given in degrees."""
    dlat = radians(lat2 - lat1)
    dlon = radians(lon2 - lon1)
    a = sin(dlat / 2) ** 2 + sin(dlon / 2) ** 2 * (cos(radians(lat1)) * cos(radians(lat2)))
    c = 2 * atan2(sqrt(a), sqrt(1 - a))
    return EARTH_RADIUS_M * c


def distance_between(a: PositionReport, b: PositionReport) -> float:
    return haversine_m(a.lat, a.lon, b.lat, b.lon)
