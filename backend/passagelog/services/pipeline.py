"""Upload pipeline for completed passages.

A job moves through CREATE_GPX -> GET_PSURL -> UPLOAD_S3 -> QUEUE -> PROCESSED.
Each stage runs as its own queue item: after a stage the worker persists the
passage status and puts the same job back on the queue until it reaches a
terminal stage. A failed stage is terminal; nothing is retried automatically.
"""
from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path

from sqlalchemy.exc import SQLAlchemyError

from passagelog.integrations.boatly import BoatlyAPIError, BoatlyClient, BoatlyCredentials
from passagelog.services.gpx import write_gpx
from passagelog.services.passage import PassageStatus
from passagelog.services.position import as_utc
from passagelog.services.store import PassageStore

logger = logging.getLogger(__name__)


class JobStage(Enum):
    CREATE_GPX = "create_gpx"
    GET_PSURL = "get_psurl"
    UPLOAD_S3 = "upload_s3"
    QUEUE = "queue"
    PROCESSED = "processed"
    CREATE_GPX_FAILED = "create_gpx_failed"
    GET_PSURL_FAILED = "get_psurl_failed"
    UPLOAD_S3_FAILED = "upload_s3_failed"
    QUEUE_FAILED = "queue_failed"

    @property
    def is_terminal(self) -> bool:
        return self not in NEXT_STAGE


NEXT_STAGE: dict[JobStage, JobStage] = {
    JobStage.CREATE_GPX: JobStage.GET_PSURL,
    JobStage.GET_PSURL: JobStage.UPLOAD_S3,
    JobStage.UPLOAD_S3: JobStage.QUEUE,
    JobStage.QUEUE: JobStage.PROCESSED,
}

FAILED_STAGE: dict[JobStage, JobStage] = {
    JobStage.CREATE_GPX: JobStage.CREATE_GPX_FAILED,
    JobStage.GET_PSURL: JobStage.GET_PSURL_FAILED,
    JobStage.UPLOAD_S3: JobStage.UPLOAD_S3_FAILED,
    JobStage.QUEUE: JobStage.QUEUE_FAILED,
}

PASSAGE_STATUS_BY_STAGE: dict[JobStage, PassageStatus] = {
    JobStage.CREATE_GPX: PassageStatus.CREATE_GPX,
    JobStage.GET_PSURL: PassageStatus.GET_PSURL,
    JobStage.UPLOAD_S3: PassageStatus.UPLOAD_S3,
    JobStage.QUEUE: PassageStatus.QUEUE,
    JobStage.PROCESSED: PassageStatus.PROCESSED,
    JobStage.CREATE_GPX_FAILED: PassageStatus.CREATE_GPX_FAILED,
    JobStage.GET_PSURL_FAILED: PassageStatus.GET_PSURL_FAILED,
    JobStage.UPLOAD_S3_FAILED: PassageStatus.UPLOAD_S3_FAILED,
    JobStage.QUEUE_FAILED: PassageStatus.QUEUE_FAILED,
}

# Failures a stage is allowed to turn into a failed status.
STAGE_ERRORS = (BoatlyAPIError, OSError, SQLAlchemyError)


class PassageBusyError(Exception):
    """A job for this passage is already running."""


class PipelineStoppedError(Exception):
    """The pipeline is shutting down and takes no new jobs."""


@dataclass
class UploadJob:
    start: datetime
    end: datetime
    gpx_file_path: Path
    auth_token: str
    user_id: str
    status: JobStage = JobStage.CREATE_GPX
    presigned_url: str | None = None
    remote_passage_id: str | None = None

    @property
    def file_name(self) -> str:
        return Path(self.gpx_file_path).name


def gpx_file_name(start: datetime) -> str:
    return f"passage-{as_utc(start):%Y%m%dT%H%M%SZ}.gpx"


def build_upload_job(start: datetime, end: datetime, credentials: BoatlyCredentials, data_dir: Path) -> UploadJob:
    return UploadJob(
        start=as_utc(start),
        end=as_utc(end),
        gpx_file_path=Path(data_dir) / "gpx" / gpx_file_name(start),
        auth_token=credentials.token,
        user_id=credentials.user_id,
    )


def _create_gpx(job: UploadJob, store: PassageStore, client: BoatlyClient) -> None:
    points = store.get_position_reports_between(job.start, job.end)
    write_gpx(job.gpx_file_path, points)
    logger.info("GPX created", extra={"path": str(job.gpx_file_path), "points": len(points)})


def _get_psurl(job: UploadJob, store: PassageStore, client: BoatlyClient) -> None:
    signed = client.get_signed_import_url(job.auth_token, job.file_name)
    job.presigned_url = signed.url
    job.remote_passage_id = signed.passage_id


def _upload_s3(job: UploadJob, store: PassageStore, client: BoatlyClient) -> None:
    if not job.presigned_url:
        raise BoatlyAPIError("No presigned URL for upload")
    client.upload_file(job.presigned_url, job.gpx_file_path)


def _queue(job: UploadJob, store: PassageStore, client: BoatlyClient) -> None:
    if job.remote_passage_id is None:
        raise BoatlyAPIError("No remote passage id to queue")
    client.queue_import(job.auth_token, job.file_name, job.user_id, job.remote_passage_id)


STAGE_HANDLERS = {
    JobStage.CREATE_GPX: _create_gpx,
    JobStage.GET_PSURL: _get_psurl,
    JobStage.UPLOAD_S3: _upload_s3,
    JobStage.QUEUE: _queue,
}


def advance(job: UploadJob, store: PassageStore, client: BoatlyClient) -> JobStage:
    """Run the job's current stage and return the stage it moves to."""
    stage = job.status
    if stage.is_terminal:
        raise ValueError(f"Job for passage {job.start.isoformat()} is already {stage.value}")

    try:
        STAGE_HANDLERS[stage](job, store, client)
    except STAGE_ERRORS as exc:
        logger.warning(
            "Upload stage failed",
            extra={"passage_start": job.start.isoformat(), "stage": stage.value, "error": str(exc)},
        )
        return FAILED_STAGE[stage]
    return NEXT_STAGE[stage]


INTERRUPTED_STATUS: dict[PassageStatus, PassageStatus] = {
    PassageStatus.PROCESSING: PassageStatus.CREATE_GPX_FAILED,
    PassageStatus.CREATE_GPX: PassageStatus.CREATE_GPX_FAILED,
    PassageStatus.GET_PSURL: PassageStatus.GET_PSURL_FAILED,
    PassageStatus.UPLOAD_S3: PassageStatus.UPLOAD_S3_FAILED,
    PassageStatus.QUEUE: PassageStatus.QUEUE_FAILED,
}


def fail_interrupted_passages(store: PassageStore) -> int:
    """Mark passages left mid-upload by a previous run as failed at the stage they reached.

    Jobs live only in memory, so after a restart such rows can only be resubmitted.
    """
    count = 0
    for status, failed in INTERRUPTED_STATUS.items():
        for passage in store.list_passages_with_status(status):
            store.set_passage_status(passage.start, failed)
            logger.warning(
                "Interrupted upload marked failed",
                extra={"passage_start": passage.start.isoformat(), "status": failed.value},
            )
            count += 1
    return count


class PassageUploadPipeline:
    def __init__(self, store: PassageStore, client: BoatlyClient, workers: int = 1):
        if workers < 1:
            raise ValueError("workers must be >= 1")
        self.store = store
        self.client = client
        self.workers = workers
        self._queue: queue.Queue[UploadJob | None] = queue.Queue()
        self._threads: list[threading.Thread] = []
        self._active: set[datetime] = set()
        self._active_lock = threading.Lock()
        self._stopping = False

    def start(self) -> None:
        if self._threads:
            return
        self._stopping = False
        for i in range(self.workers):
            thread = threading.Thread(target=self._worker, name=f"passage-upload-{i}", daemon=True)
            thread.start()
            self._threads.append(thread)
        logger.info("Upload pipeline started", extra={"workers": self.workers})

    def stop(self) -> None:
        """Refuse new jobs, let queued ones reach a terminal stage, then stop the workers."""
        with self._active_lock:
            self._stopping = True
        if self._threads:
            self._queue.join()
        for _ in self._threads:
            self._queue.put(None)
        for thread in self._threads:
            thread.join()
        self._threads = []
        logger.info("Upload pipeline stopped")

    def join(self) -> None:
        """Block until every submitted job has reached a terminal stage."""
        self._queue.join()

    def is_active(self, start: datetime) -> bool:
        with self._active_lock:
            return as_utc(start) in self._active

    def submit(self, job: UploadJob) -> None:
        with self._active_lock:
            if self._stopping:
                raise PipelineStoppedError("Upload pipeline is shutting down")
            if job.start in self._active:
                raise PassageBusyError(f"Passage {job.start.isoformat()} is already being processed")
            self._active.add(job.start)
        logger.info("Passage queued for upload", extra={"passage_start": job.start.isoformat()})
        self._queue.put(job)

    def _worker(self) -> None:
        while True:
            job = self._queue.get()
            try:
                if job is None:
                    return
                stage = job.status
                try:
                    job.status = advance(job, self.store, self.client)
                except Exception:
                    logger.exception(
                        "Upload stage crashed",
                        extra={"passage_start": job.start.isoformat(), "stage": stage.value},
                    )
                    job.status = FAILED_STAGE[stage]
                self._on_stage_complete(job)
            except Exception:
                logger.exception("Upload worker crashed on job")
                if job is not None:
                    self._release(job)
            finally:
                self._queue.task_done()

    def _on_stage_complete(self, job: UploadJob) -> None:
        status = PASSAGE_STATUS_BY_STAGE[job.status]
        try:
            self.store.set_passage_status(job.start, status)
        except SQLAlchemyError:
            logger.exception(
                "Failed to persist passage status",
                extra={"passage_start": job.start.isoformat(), "status": status.value},
            )

        if job.status.is_terminal:
            self._release(job)
            log = logger.warning if status.is_failed else logger.info
            log("Upload job finished", extra={"passage_start": job.start.isoformat(), "status": status.value})
            return

        # Re-enqueue before task_done so join() waits for the whole job.
        self._queue.put(job)

    def _release(self, job: UploadJob) -> None:
        with self._active_lock:
            self._active.discard(job.start)
