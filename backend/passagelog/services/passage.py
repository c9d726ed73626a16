from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class PassageStatus(str, Enum):
    """Persisted status of a passage row."""

    RECORDING = "recording"
    COMPLETED = "completed"
    PROCESSING = "processing"
    CREATE_GPX = "creategpx"
    GET_PSURL = "getpsurl"
    UPLOAD_S3 = "uploads3"
    QUEUE = "queue"
    PROCESSED = "processed"
    CREATE_GPX_FAILED = "creategpx-failed"
    GET_PSURL_FAILED = "getpsurl-failed"
    UPLOAD_S3_FAILED = "uploads3-failed"
    QUEUE_FAILED = "queue-failed"

    @property
    def is_failed(self) -> bool:
        return self.value.endswith("-failed")


@dataclass(frozen=True)
class PassageRecord:
    start: datetime
    end: datetime | None
    status: PassageStatus

    @property
    def is_open(self) -> bool:
        return self.end is None
