import threading
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from app.main import create_app
from app.models.errors import IngestAborted
from app.models.schemas import IngestStatus
from app.utils.config import Settings
from domains.radio_tv.ingester import Ingester


class StubIngester:
    """Stands in for the ingester so no scanner thread or repository is needed."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.started = False
        self.stopped = False
        self.stop_reasons: list[str] = []
        self.failure_count = 0

    def log_configuration(self):
        pass

    def start(self):
        self.started = True

    def stop(self):
        self.stopped = True

    def request_stop(self, reason: str = ""):
        self.stop_reasons.append(reason)

    def status(self) -> IngestStatus:
        return IngestStatus(
            running=self.started and not self.stopped,
            hot_folder=str(self.settings.hotfolder),
            failure_count=self.failure_count,
            max_fail_count=self.settings.max_fail_count,
            processed=4,
            failed=self.failure_count,
            last_file="program.xml",
            last_activity=datetime(2024, 1, 1, tzinfo=timezone.utc),
        )


@pytest.fixture
def settings(folders):
    return Settings(
        hotfolder=folders["hot"],
        lukefolder=folders["failed"],
        coldfolder=folders["processed"],
        stopfolder=folders["stop"] / "nested",
    )


@pytest.fixture
def ingesters():
    return []


@pytest.fixture
def client(settings, ingesters):
    def factory(s: Settings, on_fatal) -> StubIngester:
        ingester = StubIngester(s)
        ingesters.append(ingester)
        return ingester

    app = create_app(settings, ingester_factory=factory)
    with TestClient(app) as test_client:
        yield test_client


def test_lifespan_prepares_folders_and_starts_ingester(client, settings, ingesters):
    assert settings.stopfolder.is_dir()
    assert len(ingesters) == 1
    assert ingesters[0].started


def test_lifespan_stops_ingester_on_shutdown(settings):
    ingesters = []

    def factory(s, on_fatal):
        ingesters.append(StubIngester(s))
        return ingesters[-1]

    with TestClient(create_app(settings, ingester_factory=factory)):
        pass

    assert ingesters[0].stopped


def test_health_reports_healthy(client):
    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["scanner_running"] is True
    assert body["version"] == "1.0.0"


def test_health_reports_degraded_after_failures(client, ingesters):
    ingesters[0].failure_count = 2

    body = client.get("/health").json()

    assert body["status"] == "degraded"
    assert body["failure_count"] == 2


def test_status_returns_counters(client, settings):
    body = client.get("/status").json()

    assert body["running"] is True
    assert body["hot_folder"] == str(settings.hotfolder)
    assert body["processed"] == 4
    assert body["max_fail_count"] == 3
    assert body["last_file"] == "program.xml"


def test_stop_endpoint_requests_stop(client, ingesters):
    response = client.post("/stop")

    assert response.status_code == 202
    assert response.json()["status"] == "stopping"
    assert ingesters[0].stop_reasons == ["requested through the API"]


def test_root_lists_service(client):
    body = client.get("/").json()

    assert body["service"] == "Radio/TV Ingester API"
    assert body["health"] == "/health"


def test_breaker_trip_shuts_the_service_down(folders, schema_path, repository):
    settings = Settings(
        hotfolder=folders["hot"],
        lukefolder=folders["failed"],
        coldfolder=folders["processed"],
        stopfolder=folders["stop"],
        preingestschema=schema_path,
        scanner_initial_delay=0,
        scanner_period=0.05,
    )
    aborted = threading.Event()
    fatal: list[IngestAborted] = []

    def on_fatal(error: IngestAborted):
        fatal.append(error)
        aborted.set()

    def factory(s: Settings, handler) -> Ingester:
        return Ingester(s, client_factory=lambda: repository, on_fatal=handler)

    for n in range(3):
        (folders["hot"] / f"bad{n}.xml").write_text("<program/>")

    app = create_app(settings, ingester_factory=factory, on_fatal=on_fatal)
    with TestClient(app) as test_client:
        assert aborted.wait(timeout=10)

        response = test_client.get("/health")
        assert response.status_code == 503
        assert response.json()["status"] == "aborted"
        assert test_client.get("/status").json()["aborted"] is True

    assert len(fatal) == 1
    assert fatal[0].failure_count == 3
