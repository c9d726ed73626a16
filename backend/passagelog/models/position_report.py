from datetime import datetime

from sqlalchemy import DateTime, Float, Integer
from sqlalchemy.orm import Mapped, mapped_column

from passagelog.models.base import Base


class PositionReportRow(Base):
    __tablename__ = "positionreports"

    id: Mapped[int] = mapped_column(primary_key=True)

    time: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)

    lat: Mapped[float] = mapped_column(Float)
    lon: Mapped[float] = mapped_column(Float)

    # speeds in knots, angles in whole degrees
    sog: Mapped[float | None] = mapped_column(Float, nullable=True)
    cog: Mapped[int | None] = mapped_column(Integer, nullable=True)
    tws: Mapped[float | None] = mapped_column(Float, nullable=True)
    twa: Mapped[int | None] = mapped_column(Integer, nullable=True)
    twd: Mapped[int | None] = mapped_column(Integer, nullable=True)
