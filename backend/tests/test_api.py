"""
Tests for the HTTP API.

The app's collaborators are replaced by mocks on app.state, so these tests
exercise routing, auth and response shapes only.
"""

from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from redzone.core.exceptions import ConfigurationError, SourceNotFoundError
from redzone.core.sources import SourceRegistry
from redzone.main import create_app
from redzone.models.domain import ContentKind, ModuleStatus, StoredContentDocument
from redzone.services.ingestion.base import IngestionOutcome
from redzone.storage.content_store import ContentPage


OUTCOMES = [
    IngestionOutcome(source_id="espn-fantasy-football", success=True, items_processed=10, items_saved=8, items_dropped=2),
    IngestionOutcome(source_id="nfl-official-youtube", success=False, errors=["YouTube API error (403): quota"]),
]


def _document(n: int) -> StoredContentDocument:
    return StoredContentDocument(
        id=f"nfl-{n}",
        title=f"Highlights {n}",
        source_name="NFL Official",
        content_kind=ContentKind.VIDEO,
        published_at="2024-10-01T15:00:00.000Z",
        url=f"https://www.youtube.com/watch?v={n}",
        ingestion_source="nfl-official-youtube",
        created_at=datetime(2024, 10, 1, 16, 0),
        updated_at=datetime(2024, 10, 1, 16, 0),
    )


@pytest.fixture
def orchestrator():
    mock = MagicMock()
    mock.ingest_all = AsyncMock(return_value=OUTCOMES)
    mock.ingest_source = AsyncMock(return_value=OUTCOMES[0])
    mock.get_module_status.return_value = [
        ModuleStatus(source_id="espn-fantasy-football", enabled=True, kind=ContentKind.ARTICLE, name="ESPN Fantasy Football"),
    ]
    return mock


@pytest.fixture
def store():
    mock = MagicMock()
    mock.is_configured = True
    mock.get_content = AsyncMock(return_value=ContentPage(content=[_document(1)], total=45))
    mock.count_by_source = AsyncMock(return_value={"ESPN Fantasy Football": 12})
    return mock


@pytest.fixture
def app(settings, orchestrator, store):
    application = create_app(settings)
    application.state.orchestrator = orchestrator
    application.state.store = store
    application.state.registry = SourceRegistry()
    application.state.scheduler = None
    return application


@pytest.fixture
def client(app):
    return TestClient(app)


AUTH = {"Authorization": "Bearer test-cron-secret"}


class TestCronIngest:
    """Tests for the scheduled ingestion endpoint."""

    def test_unauthorized(self, client, orchestrator):
        response = client.get("/api/cron/ingest", headers={"Authorization": "Bearer wrong"})

        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}
        orchestrator.ingest_all.assert_not_awaited()

    def test_missing_header(self, client, orchestrator):
        response = client.post("/api/cron/ingest")

        assert response.status_code == 401
        orchestrator.ingest_all.assert_not_awaited()

    def test_secret_not_configured(self, app, orchestrator):
        app.state.settings = app.state.settings.model_copy(update={"cron_secret": None})

        response = TestClient(app).get("/api/cron/ingest", headers=AUTH)

        assert response.status_code == 500
        assert response.json() == {"error": "Server configuration error"}
        orchestrator.ingest_all.assert_not_awaited()

    @pytest.mark.parametrize("method", ["GET", "POST"])
    def test_authorized_run(self, client, orchestrator, method):
        response = client.request(method, "/api/cron/ingest", headers=AUTH)

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["summary"]["totalSources"] == 2
        assert body["summary"]["successful"] == 1
        assert body["summary"]["failed"] == 1
        assert body["summary"]["totalProcessed"] == 10
        assert body["summary"]["totalSaved"] == 8
        assert body["sourceBreakdown"][1]["errors"] == ["YouTube API error (403): quota"]
        assert body["results"][0]["itemsDropped"] == 2
        assert body["schedule"] == "0 22 * * *"
        assert body["nextScheduledRun"]
        orchestrator.ingest_all.assert_awaited_once()

    def test_configuration_failure(self, client, orchestrator):
        orchestrator.ingest_all.side_effect = ConfigurationError(
            "Missing required environment variables: DATABASE_URL"
        )

        response = client.get("/api/cron/ingest", headers=AUTH)

        assert response.status_code == 500
        assert response.json()["success"] is False
        assert "DATABASE_URL" in response.json()["message"]


class TestCronStatus:
    def test_status(self, client, tmp_path, app):
        log_file = tmp_path / "redzone.log"
        log_file.write_text(
            '{"event": "Scheduled ingestion completed", "level": "info"}\n'
            "not json\n"
            '{"event": "Database engine created", "level": "info"}\n'
        )
        app.state.settings = app.state.settings.model_copy(update={"log_file": str(log_file)})

        body = client.get("/api/cron/status").json()

        assert body["cronExpression"] == "0 22 * * *"
        assert body["schedulerRunning"] is False
        assert body["nextRun"]
        assert [e["event"] for e in body["recentLogs"]] == ["Scheduled ingestion completed"]


class TestManualIngest:
    """Tests for the manual ingestion endpoint."""

    def test_status(self, client):
        body = client.get("/api/ingest").json()

        assert body["status"] == "ready"
        assert body["modules"][0]["sourceId"] == "espn-fantasy-football"
        assert body["modules"][0]["kind"] == "article"

    def test_all_sources(self, client, orchestrator):
        response = client.post("/api/ingest")

        assert response.status_code == 200
        assert response.json()["message"] == "Ingestion completed for all sources"
        orchestrator.ingest_all.assert_awaited_once()

    def test_single_source(self, client, orchestrator):
        response = client.post("/api/ingest", json={"sourceId": "espn-fantasy-football"})

        assert response.status_code == 200
        assert response.json()["results"][0]["itemsSaved"] == 8
        orchestrator.ingest_source.assert_awaited_once_with("espn-fantasy-football")
        orchestrator.ingest_all.assert_not_awaited()

    def test_unknown_source(self, client, orchestrator):
        orchestrator.ingest_source.side_effect = SourceNotFoundError("nope")

        response = client.post("/api/ingest", json={"sourceId": "nope"})

        assert response.status_code == 404
        assert response.json()["message"] == "No module found for source: nope"


class TestContent:
    """Tests for the content query endpoint."""

    def test_paginated_content(self, client, store):
        response = client.get("/api/content", params={"type": "video", "limit": 20, "search": "highlights"})

        assert response.status_code == 200
        body = response.json()
        assert body["pagination"] == {"page": 1, "limit": 20, "total": 45, "totalPages": 3}
        assert body["content"][0]["type"] == "video"
        assert body["content"][0]["publishedAt"] == "2024-10-01T15:00:00.000Z"
        assert body["filters"]["type"] == "video"
        assert body["filters"]["searchQuery"] == "highlights"

        filters = store.get_content.await_args.args[0]
        assert filters.content_kind == ContentKind.VIDEO

    def test_limit_capped(self, client, store):
        body = client.get("/api/content", params={"limit": 500}).json()

        assert body["pagination"]["limit"] == 50
        assert store.get_content.await_args.kwargs["limit"] == 50

    def test_no_database(self, client, store):
        store.is_configured = False

        body = client.get("/api/content").json()

        assert body["content"] == []
        assert body["pagination"]["total"] == 0
        store.get_content.assert_not_awaited()


class TestSources:
    def test_sources_with_stats(self, client):
        body = client.get("/api/sources", params={"stats": "true"}).json()

        assert len(body["sources"]) == 6
        espn = next(s for s in body["sources"] if s["id"] == "espn-fantasy-football")
        assert espn["moduleLoaded"] is True
        assert body["stats"]["sourceStats"] == [{"sourceName": "ESPN Fantasy Football", "count": 12}]

    def test_sources_without_stats(self, client, store):
        body = client.get("/api/sources").json()

        assert "stats" not in body
        store.count_by_source.assert_not_awaited()


def test_health(client):
    assert client.get("/health").json()["status"] == "healthy"
