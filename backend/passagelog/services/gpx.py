"""GPX 1.0 export of a passage's track points."""
from __future__ import annotations

from pathlib import Path
from typing import Iterable
import xml.etree.ElementTree as ET

from passagelog.services.position import PositionReport, as_utc

GPX_VERSION = "1.0"
GPX_CREATOR = "passagelog"
WIND_FIELDS = ("tws", "twa", "twd")


def _format_time(point: PositionReport) -> str:
    return as_utc(point.time).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _format_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else repr(float(value))


def _trkpt(point: PositionReport) -> ET.Element:
    el = ET.Element("trkpt", lat=_format_number(point.lat), lon=_format_number(point.lon))
    ET.SubElement(el, "time").text = _format_time(point)
    if point.cog is not None:
        ET.SubElement(el, "cog").text = _format_number(point.cog)
    if point.sog is not None:
        ET.SubElement(el, "sog").text = _format_number(point.sog)
    for name in WIND_FIELDS:
        value = getattr(point, name)
        if value is not None:
            ET.SubElement(el, name).text = _format_number(value)
    return el


def render_gpx(points: Iterable[PositionReport]) -> str:
    """Render points as a single-track, single-segment GPX document, ordered by time."""
    root = ET.Element("gpx", version=GPX_VERSION, creator=GPX_CREATOR)
    segment = ET.SubElement(ET.SubElement(root, "trk"), "trkseg")
    for point in sorted(points, key=lambda p: as_utc(p.time)):
        segment.append(_trkpt(point))
    body = ET.tostring(root, encoding="unicode")
    return f"<?xml version='1.0' encoding='UTF-8'?>\n{body}\n"


def write_gpx(path: Path, points: Iterable[PositionReport]) -> Path:
    """Write (or overwrite) ``path`` with the rendered document."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_gpx(points), encoding="utf-8")
    return path
