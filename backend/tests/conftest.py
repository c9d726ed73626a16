from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine

ROOT_DIR = Path(__file__).resolve().parents[1]
TESTS_DIR = Path(__file__).resolve().parent
for path in (ROOT_DIR, TESTS_DIR):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

# Keep test imports away from any local .env or production database.
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from factories import FakeBoatlyClient
from passagelog.core.config import Settings
from passagelog.core.db import build_engine, build_session_factory, init_db
from passagelog.core.runtime import Runtime, get_runtime
from passagelog.integrations.boatly import BoatlyCredentials
from passagelog.main import app
from passagelog.services.boatly_session import BoatlySession
from passagelog.services.pipeline import PassageUploadPipeline
from passagelog.services.recorder import PassageRecorder
from passagelog.services.store import PassageStore


@pytest.fixture()
def database_url(tmp_path: Path) -> str:
    return f"sqlite:///{tmp_path / 'passagelog.db'}"


@pytest.fixture()
def engine(database_url: str) -> Generator[Engine, None, None]:
    engine = build_engine(database_url)
    init_db(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture()
def store(engine: Engine) -> PassageStore:
    return PassageStore(build_session_factory(engine))


@pytest.fixture()
def fake_client() -> FakeBoatlyClient:
    return FakeBoatlyClient()


@pytest.fixture()
def credentials() -> BoatlyCredentials:
    return BoatlyCredentials(token="jwt-token", user_id="user-1")


@pytest.fixture()
def runtime(
    tmp_path: Path,
    database_url: str,
    engine: Engine,
    store: PassageStore,
    fake_client: FakeBoatlyClient,
) -> Generator[Runtime, None, None]:
    pipeline = PassageUploadPipeline(store, fake_client, workers=2)
    pipeline.start()
    rt = Runtime(
        settings=Settings(DATA_DIR=tmp_path, DATABASE_URL=database_url),
        engine=engine,
        store=store,
        recorder=PassageRecorder(store),
        pipeline=pipeline,
        boatly=BoatlySession(fake_client),
    )
    try:
        yield rt
    finally:
        pipeline.stop()


@pytest.fixture()
def api_client(runtime: Runtime) -> Generator[TestClient, None, None]:
    app.dependency_overrides[get_runtime] = lambda: runtime
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.pop(get_runtime, None)
