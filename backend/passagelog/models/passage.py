from datetime import datetime

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from passagelog.models.base import Base


class PassageRow(Base):
    __tablename__ = "passages"

    id: Mapped[int] = mapped_column(primary_key=True)

    start: Mapped[datetime] = mapped_column(DateTime(timezone=True), unique=True, index=True)
    # null while the passage is still being recorded
    end: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    status: Mapped[str] = mapped_column(String(32), index=True)
