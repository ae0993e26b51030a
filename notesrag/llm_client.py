"""Ollama embedding client wrapper with error handling."""
import httpx
from typing import Dict, List, Optional
import structlog

from notesrag import config
from notesrag.errors import EmbeddingServiceError

logger = structlog.get_logger()


class OllamaClient:
    """Async client for the Ollama embedding API."""

    def __init__(
        self,
        base_url: str = None,
        model: str = None,
        dimension: Optional[int] = None,
        timeout: float = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize Ollama client.

        Args:
            base_url: Ollama API base URL (defaults to config.OLLAMA_BASE_URL)
            model: Embedding model (defaults to config.EMBEDDING_MODEL)
            dimension: Expected vector length (defaults to config.EMBEDDING_DIMENSION)
            timeout: Request timeout in seconds
            transport: Optional httpx transport, used by tests
        """
        self.base_url = base_url or config.OLLAMA_BASE_URL
        self.model = model or config.EMBEDDING_MODEL
        self.dimension = dimension or config.EMBEDDING_DIMENSION
        self.timeout = timeout or config.EMBEDDING_TIMEOUT
        self.transport = transport

    def _client(self, timeout: float = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=timeout or self.timeout,
            transport=self.transport,
        )

    async def embeddings(
        self,
        prompt: str,
        model: str = None,
    ) -> Dict:
        """Generate embeddings for a text prompt.

        Args:
            prompt: Text to embed
            model: Model to use (defaults to the client's model)

        Returns:
            Response dict with 'embedding' list

        Raises:
            httpx.HTTPError: On API errors
        """
        model = model or self.model

        payload = {
            "model": model,
            "prompt": prompt,
        }

        try:
            async with self._client() as client:
                logger.debug(
                    "ollama_embedding_request",
                    model=model,
                    prompt_length=len(prompt),
                )

                response = await client.post(
                    f"{self.base_url}/api/embeddings",
                    json=payload,
                )
                response.raise_for_status()

                data = response.json()

                logger.debug(
                    "ollama_embedding_response",
                    model=model,
                    dimension=len(data.get("embedding", [])),
                )

                return data

        except httpx.HTTPError as e:
            logger.error("ollama_embedding_error", error=str(e))
            raise

    async def embed(self, text: str) -> List[float]:
        """Embed one text window.

        Args:
            text: Window or query text

        Returns:
            Embedding vector of length ``self.dimension``

        Raises:
            EmbeddingServiceError: On transport errors, non-success status,
                or a missing, wrongly sized or non-numeric vector
        """
        try:
            data = await self.embeddings(prompt=text)
        except httpx.HTTPStatusError as e:
            raise EmbeddingServiceError(
                f"Embedding request failed with status {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise EmbeddingServiceError(f"Embedding request failed: {e}") from e
        except ValueError as e:
            # response body was not JSON
            raise EmbeddingServiceError(f"Invalid embedding response: {e}") from e

        embedding = data.get("embedding") if isinstance(data, dict) else None
        if not embedding or not isinstance(embedding, list):
            raise EmbeddingServiceError("Empty embedding returned from Ollama")

        if len(embedding) != self.dimension:
            raise EmbeddingServiceError(
                f"Embedding dimension mismatch: expected {self.dimension}, "
                f"got {len(embedding)}"
            )

        # bool is an int subclass but never a valid component
        if not all(
            isinstance(value, (int, float)) and not isinstance(value, bool)
            for value in embedding
        ):
            raise EmbeddingServiceError("Embedding contains non-numeric values")

        return embedding

    async def list_models(self) -> List[str]:
        """List all available Ollama models.

        Returns:
            List of model names

        Raises:
            httpx.HTTPError: On API errors
        """
        try:
            async with self._client(timeout=5.0) as client:
                response = await client.get(f"{self.base_url}/api/tags")
                response.raise_for_status()
                data = response.json()
                return [m["name"] for m in data.get("models", [])]
        except httpx.HTTPError as e:
            logger.error("ollama_list_models_error", error=str(e))
            raise


# Global client instance
ollama_client = OllamaClient()
