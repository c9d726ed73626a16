"""Passage detection.

Position reports are pushed one at a time into :class:`PassageRecorder`, which
decides when the vessel is underway, logs the reports that moved it, and opens
and closes passage rows in the store.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum

from sqlalchemy.exc import SQLAlchemyError

from passagelog.services.geo import distance_between
from passagelog.services.position import PositionReport, as_utc
from passagelog.services.store import PassageStore

logger = logging.getLogger(__name__)

MAX_HDOP = 5


class RecorderPhase(str, Enum):
    WAITING_INITIAL_POSITION = "waiting_initial_position"
    READY = "ready"
    RECORDING = "recording"
    STOPPED = "stopped"


@dataclass(frozen=True)
class RecorderSettings:
    movement_threshold_m: float = 10.0
    stillness_status_minutes: float = 0.25
    stationary_minutes_end_passage: float = 10.0


@dataclass
class RecorderState:
    underway: bool = False
    last_position_report: PositionReport | None = None
    current_passage_start: datetime | None = None
    phase: RecorderPhase = RecorderPhase.WAITING_INITIAL_POSITION
    status_message: str = "Waiting for position reports"


def unusable_reason(report: PositionReport) -> str | None:
    """Why a report must be ignored, or None when it can be used."""
    if report.lat is None:
        return "No Latitude"
    if report.lon is None:
        return "No Longitude"
    if report.sog is None:
        return "No SOG"
    if report.hdop is not None and report.hdop > MAX_HDOP:
        return f"HDOP > {MAX_HDOP}"
    return None


class PassageRecorder:
    def __init__(self, store: PassageStore, settings: RecorderSettings | None = None):
        self.store = store
        self.settings = settings or RecorderSettings()
        self._lock = threading.Lock()
        self._state = self._rehydrate()

    def _rehydrate(self) -> RecorderState:
        state = RecorderState()
        open_start = self.store.get_open_passage_start()
        if open_start is None:
            return state

        state.current_passage_start = open_start
        last = self.store.get_last_position_report()
        if last is not None and last.time >= open_start:
            state.underway = True
            state.last_position_report = last
            state.phase = RecorderPhase.RECORDING
            state.status_message = "Resumed recording"
        logger.info(
            "Existing passage found",
            extra={"passage_start": open_start.isoformat(), "resumed": state.underway},
        )
        return state

    def snapshot(self) -> RecorderState:
        with self._lock:
            return replace(self._state)

    @property
    def phase(self) -> RecorderPhase:
        with self._lock:
            return self._state.phase

    def _set_status(self, message: str) -> None:
        self._state.status_message = message

    def ingest(self, report: PositionReport) -> RecorderState:
        """Apply one report and return the state it left behind."""
        with self._lock:
            self._apply(replace(report, time=as_utc(report.time)))
            return replace(self._state)

    def on_position_report(self, report: PositionReport) -> RecorderPhase:
        return self.ingest(report).phase

    def _apply(self, pr: PositionReport) -> None:
        state = self._state
        threshold = self.settings.movement_threshold_m

        reason = unusable_reason(pr)
        if reason is not None:
            self._set_status(f"Ignoring Position Report : {reason}")
            logger.debug("Ignoring position report", extra={"reason": reason})
            return

        last = state.last_position_report
        distance_moved = distance_between(last, pr) if last is not None else 0.0

        if not state.underway:
            if distance_moved >= threshold:
                state.underway = True
                state.phase = RecorderPhase.RECORDING
                self._set_status(f"Movement detected - started recording at {pr.time.isoformat()}")
                logger.info("Movement detected", extra={"time": pr.time.isoformat()})
            elif last is None:
                # The first report is only a baseline; it is neither logged nor a passage start.
                state.last_position_report = pr
                state.phase = RecorderPhase.READY
                self._set_status("Initial position determined - waiting for vessel to move")
                logger.info("Initial position determined", extra={"lat": pr.lat, "lon": pr.lon})
                return
            else:
                logger.debug("Vessel stationary", extra={"distance_m": round(distance_moved, 2)})
                return

        if distance_moved >= threshold:
            try:
                self.store.append_position_report(pr)
            except SQLAlchemyError:
                logger.exception("Failed to log position report", extra={"time": pr.time.isoformat()})
            state.last_position_report = pr

        if state.current_passage_start is None:
            try:
                self.store.create_passage(pr.time)
            except SQLAlchemyError:
                logger.exception("Failed to create passage", extra={"start": pr.time.isoformat()})
            else:
                state.current_passage_start = pr.time
                logger.info("New passage started", extra={"start": pr.time.isoformat()})

        if distance_moved < threshold:
            # Minutes since the last report that moved the vessel, not since it stopped.
            elapsed_min = (pr.time - state.last_position_report.time).total_seconds() / 60

            if elapsed_min >= self.settings.stillness_status_minutes:
                state.phase = RecorderPhase.STOPPED
                self._set_status(f"Stopped for: {round(elapsed_min, 2)} minutes")

            if elapsed_min >= self.settings.stationary_minutes_end_passage:
                logger.info("End of passage detected", extra={"stopped_min": round(elapsed_min, 2)})
                self._end_passage(pr.time)
        else:
            state.phase = RecorderPhase.RECORDING
            self._set_status("Movement detected - recording")

    def end_passage(self, time: datetime) -> bool:
        """Close the passage being recorded; returns False if there was none."""
        with self._lock:
            return self._end_passage(as_utc(time))

    def _end_passage(self, time: datetime) -> bool:
        state = self._state
        start = state.current_passage_start
        if start is not None:
            try:
                self.store.close_passage(start, time)
            except SQLAlchemyError:
                # Keep recording; the next still report retries the close.
                logger.exception("Failed to close passage", extra={"start": start.isoformat()})
                return False

        self._state = RecorderState(status_message="Passage completed - waiting for position reports")
        if start is None:
            return False

        logger.info("Passage completed", extra={"start": start.isoformat(), "end": time.isoformat()})
        return True
