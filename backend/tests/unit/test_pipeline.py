import threading
from datetime import timedelta

import pytest

from factories import T0, FakeBoatlyClient, make_report
from passagelog.integrations.boatly import BoatlyClient, SignedImport
from passagelog.services.passage import PassageStatus
from passagelog.services.pipeline import (
    PASSAGE_STATUS_BY_STAGE,
    JobStage,
    PassageBusyError,
    PassageUploadPipeline,
    PipelineStoppedError,
    advance,
    build_upload_job,
    fail_interrupted_passages,
    gpx_file_name,
)

END = T0 + timedelta(minutes=30)


@pytest.fixture()
def completed_passage(store):
    store.create_passage(T0)
    for minute in range(0, 31, 10):
        store.append_position_report(make_report(minute * 60, minute * 20))
    store.close_passage(T0, END)
    return store.get_passage(T0)


@pytest.fixture()
def job(tmp_path, credentials, completed_passage):
    return build_upload_job(completed_passage.start, completed_passage.end, credentials, tmp_path)


def _run_to_completion(job, store, client):
    stages = [job.status]
    while not job.status.is_terminal:
        job.status = advance(job, store, client)
        stages.append(job.status)
    return stages


def test_every_stage_maps_to_a_passage_status():
    assert set(PASSAGE_STATUS_BY_STAGE) == set(JobStage)
    failed = {stage for stage in JobStage if PASSAGE_STATUS_BY_STAGE[stage].is_failed}
    assert failed == {
        JobStage.CREATE_GPX_FAILED,
        JobStage.GET_PSURL_FAILED,
        JobStage.UPLOAD_S3_FAILED,
        JobStage.QUEUE_FAILED,
    }
    assert all(stage.is_terminal for stage in failed)
    assert JobStage.PROCESSED.is_terminal
    assert not JobStage.QUEUE.is_terminal


def test_build_upload_job(tmp_path, credentials):
    job = build_upload_job(T0, END, credentials, tmp_path)

    assert job.status == JobStage.CREATE_GPX
    assert job.gpx_file_path == tmp_path / "gpx" / "passage-20240601T090000Z.gpx"
    assert job.file_name == gpx_file_name(T0)
    assert job.auth_token == "jwt-token"
    assert job.user_id == "user-1"


def test_successful_job_walks_every_stage(job, store, fake_client):
    stages = _run_to_completion(job, store, fake_client)

    assert stages == [
        JobStage.CREATE_GPX,
        JobStage.GET_PSURL,
        JobStage.UPLOAD_S3,
        JobStage.QUEUE,
        JobStage.PROCESSED,
    ]
    assert fake_client.call_names == ["get_signed_import_url", "upload_file", "queue_import"]
    assert job.presigned_url == "https://bucket.example/upload?sig=abc"
    assert job.remote_passage_id == "remote-42"
    assert fake_client.calls[-1] == ("queue_import", job.file_name, "user-1", "remote-42")
    assert fake_client.uploaded[0].count(b"<trkpt") == 4


def test_upload_failure_is_terminal_and_skips_queue(job, store):
    client = FakeBoatlyClient(fail_on={"upload_file"})

    stages = _run_to_completion(job, store, client)

    assert stages[-1] == JobStage.UPLOAD_S3_FAILED
    assert "queue_import" not in client.call_names


def test_signed_url_failure(job, store):
    client = FakeBoatlyClient(fail_on={"get_signed_import_url"})

    assert _run_to_completion(job, store, client)[-1] == JobStage.GET_PSURL_FAILED
    assert job.presigned_url is None


def test_gpx_write_failure(job, store, fake_client, tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("x")
    job.gpx_file_path = blocker / "passage.gpx"

    assert advance(job, store, fake_client) == JobStage.CREATE_GPX_FAILED
    assert fake_client.calls == []


def test_rerunning_create_gpx_does_not_duplicate_points(job, store, fake_client):
    advance(job, store, fake_client)
    advance(job, store, fake_client)

    assert job.gpx_file_path.read_text(encoding="utf-8").count("<trkpt") == 4


def test_advance_rejects_terminal_job(job, store, fake_client):
    job.status = JobStage.PROCESSED
    with pytest.raises(ValueError):
        advance(job, store, fake_client)


def test_pipeline_persists_processed(job, store, fake_client):
    pipeline = PassageUploadPipeline(store, fake_client, workers=2)
    pipeline.start()
    try:
        pipeline.submit(job)
        pipeline.join()
    finally:
        pipeline.stop()

    assert job.status == JobStage.PROCESSED
    assert store.get_passage_status(T0) == PassageStatus.PROCESSED
    assert not pipeline.is_active(T0)


def test_pipeline_persists_stage_failure(job, store):
    client = FakeBoatlyClient(fail_on={"upload_file"})
    pipeline = PassageUploadPipeline(store, client)
    pipeline.start()
    try:
        pipeline.submit(job)
        pipeline.join()
    finally:
        pipeline.stop()

    assert store.get_passage_status(T0) == PassageStatus.UPLOAD_S3_FAILED
    assert "queue_import" not in client.call_names


def test_pipeline_rejects_second_job_for_active_passage(job, store, fake_client, tmp_path, credentials):
    pipeline = PassageUploadPipeline(store, fake_client)
    pipeline.submit(job)

    assert pipeline.is_active(T0)
    with pytest.raises(PassageBusyError):
        pipeline.submit(build_upload_job(T0, END, credentials, tmp_path))

    pipeline.start()
    try:
        pipeline.join()
    finally:
        pipeline.stop()
    assert not pipeline.is_active(T0)


def test_failed_passage_can_be_resubmitted(job, store, tmp_path, credentials):
    client = FakeBoatlyClient(fail_on={"queue_import"})
    pipeline = PassageUploadPipeline(store, client)
    pipeline.start()
    try:
        pipeline.submit(job)
        pipeline.join()
        assert store.get_passage_status(T0) == PassageStatus.QUEUE_FAILED

        client.fail_on.clear()
        pipeline.submit(build_upload_job(T0, END, credentials, tmp_path))
        pipeline.join()
    finally:
        pipeline.stop()

    assert store.get_passage_status(T0) == PassageStatus.PROCESSED


def test_pipeline_requires_a_worker(store, fake_client):
    with pytest.raises(ValueError):
        PassageUploadPipeline(store, fake_client, workers=0)


class MalformedUrlClient(BoatlyClient):
    """Signs an unparseable URL; the upload goes through the real httpx call."""

    def get_signed_import_url(self, token, file_name):
        return SignedImport(url="https://[::1/upload", passage_id="remote-42")

    def queue_import(self, token, file_name, user_id, passage_id):
        raise AssertionError("queue_import must not run after a failed upload")


class CrashingClient(FakeBoatlyClient):
    def get_signed_import_url(self, token, file_name):
        raise RuntimeError("unexpected payload")


class SlowClient(FakeBoatlyClient):
    def __init__(self):
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()

    def get_signed_import_url(self, token, file_name):
        self.entered.set()
        self.release.wait(timeout=5)
        return super().get_signed_import_url(token, file_name)


def test_malformed_presigned_url_fails_upload_stage(job, store):
    pipeline = PassageUploadPipeline(store, MalformedUrlClient(base_url="https://api.example/v1"))
    pipeline.start()
    try:
        pipeline.submit(job)
        pipeline.join()
    finally:
        pipeline.stop()

    assert job.status == JobStage.UPLOAD_S3_FAILED
    assert store.get_passage_status(T0) == PassageStatus.UPLOAD_S3_FAILED
    assert not pipeline.is_active(T0)


def test_unexpected_stage_error_is_recorded_as_stage_failure(job, store):
    pipeline = PassageUploadPipeline(store, CrashingClient())
    pipeline.start()
    try:
        pipeline.submit(job)
        pipeline.join()
    finally:
        pipeline.stop()

    assert store.get_passage_status(T0) == PassageStatus.GET_PSURL_FAILED
    assert not pipeline.is_active(T0)


def test_stop_finishes_job_in_flight(job, store):
    client = SlowClient()
    pipeline = PassageUploadPipeline(store, client, workers=2)
    pipeline.start()
    pipeline.submit(job)
    assert client.entered.wait(timeout=5)

    stopper = threading.Thread(target=pipeline.stop)
    stopper.start()
    client.release.set()
    stopper.join(timeout=5)

    assert not stopper.is_alive()
    assert store.get_passage_status(T0) == PassageStatus.PROCESSED
    assert not pipeline.is_active(T0)


def test_stopped_pipeline_refuses_jobs(job, store, fake_client):
    pipeline = PassageUploadPipeline(store, fake_client)
    pipeline.start()
    pipeline.stop()

    with pytest.raises(PipelineStoppedError):
        pipeline.submit(job)
    assert not pipeline.is_active(T0)


def test_interrupted_uploads_are_marked_failed(store):
    starts = {
        PassageStatus.PROCESSING: T0,
        PassageStatus.GET_PSURL: T0 + timedelta(hours=1),
        PassageStatus.UPLOAD_S3: T0 + timedelta(hours=2),
        PassageStatus.QUEUE: T0 + timedelta(hours=3),
        PassageStatus.PROCESSED: T0 + timedelta(hours=4),
    }
    for status, start in starts.items():
        store.create_passage(start)
        store.close_passage(start, start + timedelta(minutes=30))
        store.set_passage_status(start, status)

    assert fail_interrupted_passages(store) == 4

    assert store.get_passage_status(starts[PassageStatus.PROCESSING]) == PassageStatus.CREATE_GPX_FAILED
    assert store.get_passage_status(starts[PassageStatus.GET_PSURL]) == PassageStatus.GET_PSURL_FAILED
    assert store.get_passage_status(starts[PassageStatus.UPLOAD_S3]) == PassageStatus.UPLOAD_S3_FAILED
    assert store.get_passage_status(starts[PassageStatus.QUEUE]) == PassageStatus.QUEUE_FAILED
    assert store.get_passage_status(starts[PassageStatus.PROCESSED]) == PassageStatus.PROCESSED
