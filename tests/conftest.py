from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from sensor_logger.api import deps
from sensor_logger.core.config import Settings
from sensor_logger.db.engine import create_db_engine, create_session_factory, init_schema
from sensor_logger.factory import create_app
from sensor_logger.repositories.sql import SqlReadingRepository
from sensor_logger.services.ingestion import ReadingIngestor
from tests.fakes import FakeOpenMeteoClient


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(
        _env_file=None,
        env="test",
        debug=True,
        docs_enabled=False,
        log_level="DEBUG",
        cors_origins=["http://localhost"],
        trusted_hosts=["testserver", "localhost"],
        database_url=f"sqlite:///{tmp_path / 'sensor_data.db'}",
        mqtt_enabled=False,
        weather_latitude=59.91,
        weather_longitude=10.75,
    )


@pytest.fixture()
def session_factory(settings: Settings):
    engine = create_db_engine(settings)
    init_schema(engine)
    yield create_session_factory(engine)
    engine.dispose()


@pytest.fixture()
def repo(session_factory) -> SqlReadingRepository:
    return SqlReadingRepository(session_factory=session_factory)


@pytest.fixture()
def ingestor(repo: SqlReadingRepository) -> ReadingIngestor:
    return ReadingIngestor(repo=repo, max_payload_bytes=4096)


@pytest.fixture()
def weather_client() -> FakeOpenMeteoClient:
    return FakeOpenMeteoClient()


@pytest.fixture()
def app(settings: Settings, weather_client: FakeOpenMeteoClient):
    app = create_app(settings)
    app.dependency_overrides[deps.get_open_meteo_client] = lambda: weather_client
    return app


@pytest.fixture()
def client(app) -> TestClient:
    with TestClient(app) as client:
        yield client


@pytest.fixture()
def app_ingestor(client: TestClient) -> ReadingIngestor:
    """Ingestor writing into the same database the running app reads from."""
    return ReadingIngestor(
        repo=SqlReadingRepository(session_factory=client.app.state.session_factory)
    )
