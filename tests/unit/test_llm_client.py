"""Unit tests for the Ollama embedding client."""
import json

import httpx
import pytest

from notesrag.errors import EmbeddingServiceError
from notesrag.llm_client import OllamaClient


def _client(handler, dimension=4) -> OllamaClient:
    return OllamaClient(
        base_url="http://ollama.test",
        model="nomic-embed-text",
        dimension=dimension,
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_embed_posts_model_and_prompt():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["payload"] = json.loads(request.content)
        return httpx.Response(200, json={"embedding": [0.1, 0.2, 0.3, 0.4]})

    vector = await _client(handler).embed("Title: Trip\n\nContent: Paris")

    assert vector == [0.1, 0.2, 0.3, 0.4]
    assert seen["url"] == "http://ollama.test/api/embeddings"
    assert seen["payload"] == {
        "model": "nomic-embed-text",
        "prompt": "Title: Trip\n\nContent: Paris",
    }


@pytest.mark.asyncio
async def test_non_success_status_raises():
    client = _client(lambda request: httpx.Response(500, json={"error": "model not loaded"}))

    with pytest.raises(EmbeddingServiceError) as exc_info:
        await client.embed("text")

    assert exc_info.value.status_code == 500


@pytest.mark.asyncio
async def test_transport_error_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(EmbeddingServiceError) as exc_info:
        await _client(handler).embed("text")

    assert exc_info.value.status_code is None


@pytest.mark.asyncio
async def test_empty_embedding_raises():
    client = _client(lambda request: httpx.Response(200, json={"embedding": []}))

    with pytest.raises(EmbeddingServiceError):
        await client.embed("text")


@pytest.mark.asyncio
async def test_wrong_dimension_raises():
    client = _client(lambda request: httpx.Response(200, json={"embedding": [0.5] * 3}))

    with pytest.raises(EmbeddingServiceError, match="dimension"):
        await client.embed("text")


@pytest.mark.asyncio
async def test_invalid_json_raises():
    client = _client(lambda request: httpx.Response(200, content=b"<html>oops</html>"))

    with pytest.raises(EmbeddingServiceError):
        await client.embed("text")


@pytest.mark.asyncio
async def test_list_models():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/tags"
        return httpx.Response(
            200, json={"models": [{"name": "nomic-embed-text:latest"}, {"name": "gemma3:12b"}]}
        )

    assert await _client(handler).list_models() == ["nomic-embed-text:latest", "gemma3:12b"]


@pytest.mark.asyncio
@pytest.mark.parametrize("bad", [["x"] * 4, [0.1, None, 0.3, 0.4], [True] * 4])
async def test_non_numeric_embedding_raises(bad):
    client = _client(lambda request: httpx.Response(200, json={"embedding": bad}))

    with pytest.raises(EmbeddingServiceError, match="non-numeric"):
        await client.embed("text")
