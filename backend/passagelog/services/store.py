from __future__ import annotations

import logging
import threading
from datetime import datetime

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session, sessionmaker

from passagelog.models.passage import PassageRow
from passagelog.models.position_report import PositionReportRow
from passagelog.services.passage import PassageRecord, PassageStatus
from passagelog.services.position import PositionReport, as_utc

logger = logging.getLogger(__name__)


def _round_angle(value: float | None) -> int | None:
    return None if value is None else round(value)


def _report_from_row(row: PositionReportRow) -> PositionReport:
    return PositionReport(
        time=as_utc(row.time),
        lat=row.lat,
        lon=row.lon,
        sog=row.sog,
        cog=row.cog,
        tws=row.tws,
        twa=row.twa,
        twd=row.twd,
    )


def _passage_from_row(row: PassageRow) -> PassageRecord:
    return PassageRecord(
        start=as_utc(row.start),
        end=as_utc(row.end) if row.end is not None else None,
        status=PassageStatus(row.status),
    )


class PassageStore:
    """Track points and passage rows.

    Every call opens its own session. Writes go through a single lock so the
    recorder and the upload workers never interleave updates.
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory
        self._write_lock = threading.Lock()

    # Position reports

    def append_position_report(self, report: PositionReport) -> None:
        row = PositionReportRow(
            time=as_utc(report.time),
            lat=report.lat,
            lon=report.lon,
            sog=report.sog,
            cog=_round_angle(report.cog),
            tws=report.tws,
            twa=_round_angle(report.twa),
            twd=_round_angle(report.twd),
        )
        with self._write_lock, self._session_factory() as db:
            db.add(row)
            db.commit()

    def get_last_position_report(self) -> PositionReport | None:
        with self._session_factory() as db:
            row = db.scalars(
                select(PositionReportRow).order_by(PositionReportRow.time.desc()).limit(1)
            ).first()
            return _report_from_row(row) if row is not None else None

    def get_position_reports_between(self, start: datetime, end: datetime) -> list[PositionReport]:
        with self._session_factory() as db:
            rows = db.scalars(
                select(PositionReportRow)
                .where(PositionReportRow.time >= as_utc(start), PositionReportRow.time <= as_utc(end))
                .order_by(PositionReportRow.time.asc(), PositionReportRow.id.asc())
            ).all()
            return [_report_from_row(row) for row in rows]

    def get_position_report_count_since(self, start: datetime, until: datetime | None = None) -> int:
        q = select(func.count()).select_from(PositionReportRow).where(PositionReportRow.time >= as_utc(start))
        if until is not None:
            q = q.where(PositionReportRow.time <= as_utc(until))
        with self._session_factory() as db:
            return db.scalar(q) or 0

    def get_position_report_count(self) -> int:
        with self._session_factory() as db:
            return db.scalar(select(func.count()).select_from(PositionReportRow)) or 0

    # Passages

    def create_passage(self, start: datetime) -> None:
        with self._write_lock, self._session_factory() as db:
            db.add(PassageRow(start=as_utc(start), end=None, status=PassageStatus.RECORDING.value))
            db.commit()

    def close_passage(self, start: datetime, end: datetime) -> None:
        with self._write_lock, self._session_factory() as db:
            db.execute(
                update(PassageRow)
                .where(PassageRow.start == as_utc(start))
                .values(end=as_utc(end), status=PassageStatus.COMPLETED.value)
            )
            db.commit()

    def get_open_passage_start(self) -> datetime | None:
        with self._session_factory() as db:
            start = db.scalars(
                select(PassageRow.start).where(PassageRow.end.is_(None)).order_by(PassageRow.start.desc()).limit(1)
            ).first()
            return as_utc(start) if start is not None else None

    def get_passage(self, start: datetime) -> PassageRecord | None:
        with self._session_factory() as db:
            row = db.scalars(select(PassageRow).where(PassageRow.start == as_utc(start))).one_or_none()
            return _passage_from_row(row) if row is not None else None

    def get_passage_status(self, start: datetime) -> PassageStatus | None:
        passage = self.get_passage(start)
        return passage.status if passage is not None else None

    def list_passages(self) -> list[PassageRecord]:
        with self._session_factory() as db:
            rows = db.scalars(select(PassageRow).order_by(PassageRow.start.desc())).all()
            return [_passage_from_row(row) for row in rows]

    def list_passages_with_status(self, status: PassageStatus) -> list[PassageRecord]:
        with self._session_factory() as db:
            rows = db.scalars(
                select(PassageRow).where(PassageRow.status == status.value).order_by(PassageRow.start.desc())
            ).all()
            return [_passage_from_row(row) for row in rows]

    def set_passage_status(self, start: datetime, status: PassageStatus) -> None:
        with self._write_lock, self._session_factory() as db:
            db.execute(update(PassageRow).where(PassageRow.start == as_utc(start)).values(status=status.value))
            db.commit()

    def delete_passage(self, start: datetime, end: datetime) -> bool:
        """Delete a closed passage and every track point recorded during it."""
        start, end = as_utc(start), as_utc(end)
        with self._write_lock, self._session_factory() as db:
            deleted = db.execute(delete(PassageRow).where(PassageRow.start == start, PassageRow.end == end))
            if deleted.rowcount == 0:
                db.rollback()
                return False
            db.execute(
                delete(PositionReportRow).where(PositionReportRow.time >= start, PositionReportRow.time <= end)
            )
            db.commit()
        logger.info("Passage deleted", extra={"start": start.isoformat(), "end": end.isoformat()})
        return True

    def delete_passages_with_status(self, status: PassageStatus) -> int:
        count = 0
        for passage in self.list_passages_with_status(status):
            if passage.end is None:
                continue
            if self.delete_passage(passage.start, passage.end):
                count += 1
        logger.info("Deleted passages", extra={"status": status.value, "count": count})
        return count
