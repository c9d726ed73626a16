import xml.etree.ElementTree as ET

from factories import make_report
from passagelog.services.gpx import render_gpx, write_gpx


def _trkpts(document: str):
    root = ET.fromstring(document.split("\n", 1)[1])
    assert root.tag == "gpx"
    assert root.get("version") == "1.0"
    tracks = root.findall("trk")
    assert len(tracks) == 1
    segments = tracks[0].findall("trkseg")
    assert len(segments) == 1
    return segments[0].findall("trkpt")


def test_render_gpx_one_trkpt_per_point_in_time_order():
    points = [make_report(60, 20), make_report(0, 0), make_report(30, 10)]

    trkpts = _trkpts(render_gpx(points))

    assert [p.findtext("time") for p in trkpts] == [
        "2024-06-01T09:00:00.000Z",
        "2024-06-01T09:00:30.000Z",
        "2024-06-01T09:01:00.000Z",
    ]
    assert trkpts[0].get("lat") == "50.8"
    assert trkpts[0].get("lon") == "-1.3"
    assert trkpts[0].findtext("cog") == "180"
    assert trkpts[0].findtext("sog") == "5"


def test_render_gpx_includes_wind_only_when_present():
    calm = make_report(0)
    windy = make_report(10, 20, tws=14.2, twa=45, twd=270)

    trkpts = _trkpts(render_gpx([calm, windy]))

    assert [child.tag for child in trkpts[0]] == ["time", "cog", "sog"]
    assert trkpts[1].findtext("tws") == "14.2"
    assert trkpts[1].findtext("twa") == "45"
    assert trkpts[1].findtext("twd") == "270"


def test_render_gpx_without_points_is_an_empty_segment():
    assert _trkpts(render_gpx([])) == []


def test_write_gpx_twice_does_not_duplicate_points(tmp_path):
    path = tmp_path / "gpx" / "passage.gpx"
    points = [make_report(0), make_report(10, 20)]

    write_gpx(path, points)
    write_gpx(path, points)

    content = path.read_text(encoding="utf-8")
    assert content.count("<trkpt") == 2
    assert len(_trkpts(content)) == 2
