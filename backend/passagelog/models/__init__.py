from passagelog.models.base import Base
from passagelog.models.passage import PassageRow
from passagelog.models.position_report import PositionReportRow

__all__ = [
    "Base",
    "PassageRow",
    "PositionReportRow",
]
