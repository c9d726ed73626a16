from datetime import datetime, timezone

from pydantic import BaseModel, Field

from passagelog.services.geo import mps_to_knots, radians_to_degrees
from passagelog.services.position import PositionReport
from passagelog.services.recorder import RecorderPhase


class PositionDeltaIn(BaseModel):
    """Raw instrument values: degrees for position, m/s for speeds, radians for angles."""

    time: datetime | None = None
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    speed_over_ground: float | None = Field(default=None, ge=0)
    course_over_ground_true: float | None = None
    wind_speed_over_ground: float | None = Field(default=None, ge=0)
    wind_angle_true_ground: float | None = None
    wind_direction_true: float | None = None
    horizontal_dilution: float | None = Field(default=None, ge=0)

    def to_position_report(self) -> PositionReport:
        def knots(v: float | None) -> float | None:
            return mps_to_knots(v) if v is not None else None

        def degrees(v: float | None) -> int | None:
            return radians_to_degrees(v) if v is not None else None

        return PositionReport(
            time=self.time or datetime.now(timezone.utc),
            lat=self.latitude,
            lon=self.longitude,
            sog=knots(self.speed_over_ground),
            cog=degrees(self.course_over_ground_true),
            tws=knots(self.wind_speed_over_ground),
            twa=degrees(self.wind_angle_true_ground),
            twd=degrees(self.wind_direction_true),
            hdop=self.horizontal_dilution,
        )


class PositionAcceptedOut(BaseModel):
    phase: RecorderPhase
    status_message: str


class RecorderStatusOut(BaseModel):
    phase: RecorderPhase
    status_message: str
    underway: bool
    passage_start: datetime | None
    passage_point_count: int
    position_report_count: int
