"""Tests for the HTTP API."""
import pytest

from notesrag import main
from notesrag.errors import EmbeddingServiceError, SourceStreamError
from notesrag.models import RetrievalResult


@pytest.fixture
def client():
    return main.app.test_client()


@pytest.mark.asyncio
async def test_health_live(client):
    response = await client.get("/health/live")
    assert response.status_code == 200
    assert await response.get_json() == {"status": "alive"}


@pytest.mark.asyncio
async def test_health_ready_accepts_tagged_model(client, monkeypatch):
    async def list_models():
        return ["nomic-embed-text:latest"]

    monkeypatch.setattr(main.ollama_client, "list_models", list_models)

    response = await client.get("/health/ready")
    data = await response.get_json()

    assert response.status_code == 200
    assert data["models"] is True


@pytest.mark.asyncio
async def test_health_ready_missing_model(client, monkeypatch):
    async def list_models():
        return ["gemma3:12b"]

    monkeypatch.setattr(main.ollama_client, "list_models", list_models)

    response = await client.get("/health/ready")
    assert response.status_code == 503
    assert (await response.get_json())["status"] == "unhealthy"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [{}, {"query": ""}, {"query": "   "}, {"query": 5}, [1], ["paris"], "paris"],
)
async def test_query_requires_text(client, body):
    response = await client.post("/api/query", json=body)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_query_rejects_bad_numbers(client):
    response = await client.post("/api/query", json={"query": "paris", "k": "many"})
    assert response.status_code == 400


@pytest.mark.asyncio
@pytest.mark.parametrize("folder", [3, ["Travel"], {"name": "Travel"}])
async def test_query_rejects_non_string_folder(client, monkeypatch, folder):
    async def fake_query(*args, **kwargs):
        raise AssertionError("query must not run")

    monkeypatch.setattr(main, "query_notes", fake_query)

    response = await client.post("/api/query", json={"query": "paris", "folder": folder})
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_query_returns_results(client, monkeypatch):
    seen = {}

    async def fake_query(text, k=None, max_distance=None, folder_name=None):
        seen.update(text=text, k=k, max_distance=max_distance, folder_name=folder_name)
        return [
            RetrievalResult(
                window_id=2,
                note_title="Trip",
                note_updated="2024-03-02T18:40:12",
                content="Title: Trip\n\nContent: Paris was lovely.",
                distance=0.5,
            )
        ]

    monkeypatch.setattr(main, "query_notes", fake_query)

    response = await client.post(
        "/api/query", json={"query": " Paris ", "k": 3, "max_distance": 10, "folder": "Travel"}
    )
    data = await response.get_json()

    assert response.status_code == 200
    assert seen == {"text": "Paris", "k": 3, "max_distance": 10.0, "folder_name": "Travel"}
    assert data["results"][0]["note_title"] == "Trip"
    assert data["results"][0]["distance"] == 0.5


@pytest.mark.asyncio
async def test_query_embedding_unavailable(client, monkeypatch):
    async def failing_query(*args, **kwargs):
        raise EmbeddingServiceError("Failed to generate embedding")

    monkeypatch.setattr(main, "query_notes", failing_query)

    response = await client.post("/api/query", json={"query": "paris"})
    assert response.status_code == 503


@pytest.mark.asyncio
async def test_folders(client, monkeypatch):
    monkeypatch.setattr(main, "list_folders", lambda: ["Home", "Travel"])

    response = await client.get("/api/folders")
    assert await response.get_json() == {"folders": ["Home", "Travel"]}


@pytest.mark.asyncio
async def test_notes_count_reports_source_error(client, monkeypatch):
    async def failing_count():
        raise SourceStreamError("osascript not found", exit_code=127)

    monkeypatch.setattr(main, "count_indexed_notes", lambda: 4)
    monkeypatch.setattr(main.ingest, "count_source_notes", failing_count)

    response = await client.get("/api/notes/count")
    data = await response.get_json()

    assert data["indexed"] == 4
    assert data["source"] is None
    assert data["source_error"] == "osascript not found"


@pytest.mark.asyncio
async def test_ingest_reports_stats(client, monkeypatch):
    async def fake_ingestion():
        return {"notes_saved": 2, "windows_saved": 5}

    monkeypatch.setattr(main.ingest, "run_full_ingestion", fake_ingestion)

    response = await client.post("/api/ingest")
    data = await response.get_json()

    assert response.status_code == 200
    assert data["stats"]["windows_saved"] == 5


@pytest.mark.asyncio
async def test_ingest_source_failure(client, monkeypatch):
    async def failing_ingestion():
        raise SourceStreamError("exit 1", exit_code=1, stats={"notes_saved": 3})

    monkeypatch.setattr(main.ingest, "run_full_ingestion", failing_ingestion)

    response = await client.post("/api/ingest")
    data = await response.get_json()

    assert response.status_code == 502
    assert data["stats"] == {"notes_saved": 3}


@pytest.mark.asyncio
async def test_ingest_rejects_concurrent_run(client):
    await main._ingest_lock.acquire()
    try:
        response = await client.post("/api/ingest")
    finally:
        main._ingest_lock.release()

    assert response.status_code == 409
