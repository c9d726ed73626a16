from __future__ import annotations

import logging
from dataclasses import dataclass

from fastapi import Request
from sqlalchemy.engine import Engine

from passagelog.core.config import Settings
from passagelog.core.db import build_engine, build_session_factory, init_db
from passagelog.services.boatly_session import BoatlySession, build_boatly_session
from passagelog.services.pipeline import PassageUploadPipeline, fail_interrupted_passages
from passagelog.services.recorder import PassageRecorder, RecorderSettings
from passagelog.services.store import PassageStore

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    settings: Settings
    engine: Engine
    store: PassageStore
    recorder: PassageRecorder
    pipeline: PassageUploadPipeline
    boatly: BoatlySession

    def close(self) -> None:
        self.pipeline.stop()
        self.engine.dispose()


def build_runtime(settings: Settings) -> Runtime:
    engine = build_engine(settings.DATABASE_URL)
    init_db(engine)
    store = PassageStore(build_session_factory(engine))
    fail_interrupted_passages(store)

    recorder = PassageRecorder(
        store,
        RecorderSettings(
            movement_threshold_m=settings.MOVEMENT_THRESHOLD_M,
            stillness_status_minutes=settings.STILLNESS_STATUS_MINUTES,
            stationary_minutes_end_passage=settings.STATIONARY_MINUTES_END_PASSAGE,
        ),
    )
    boatly = build_boatly_session(settings)
    pipeline = PassageUploadPipeline(store, boatly.client, workers=settings.UPLOAD_WORKERS)
    pipeline.start()

    logger.info("Runtime started", extra={"data_dir": str(settings.DATA_DIR)})
    return Runtime(
        settings=settings,
        engine=engine,
        store=store,
        recorder=recorder,
        pipeline=pipeline,
        boatly=boatly,
    )


def get_runtime(request: Request) -> Runtime:
    return request.app.state.runtime
