"""Retriever for semantic search over indexed notes.

Handles:
- Query embedding generation
- Nearest-window search with distance threshold and folder filter
"""
from typing import List, Optional
import structlog

from notesrag import config
from notesrag.db import NotesDatabase, get_database
from notesrag.llm_client import OllamaClient, ollama_client
from notesrag.models import RetrievalResult

logger = structlog.get_logger()


class Retriever:
    """Semantic retriever over stored note windows."""

    def __init__(
        self,
        database: Optional[NotesDatabase] = None,
        client: Optional[OllamaClient] = None,
        top_k: int = None,
        max_distance: float = None,
    ):
        """Initialize the retriever.

        Args:
            database: Storage engine (default: shared instance)
            client: Embedding client (default: shared Ollama client)
            top_k: Number of results to retrieve (default from config)
            max_distance: Distance threshold (default from config)
        """
        self.database = database
        self.client = client or ollama_client
        self.top_k = top_k or config.RETRIEVAL_TOP_K
        self.max_distance = (
            config.RETRIEVAL_MAX_DISTANCE if max_distance is None else max_distance
        )

    def _ensure_database(self) -> NotesDatabase:
        if self.database is None:
            self.database = get_database()
        return self.database

    async def retrieve(
        self,
        query: str,
        top_k: Optional[int] = None,
        max_distance: Optional[float] = None,
        folder_name: Optional[str] = None,
    ) -> List[RetrievalResult]:
        """Retrieve the windows closest to a query.

        Args:
            query: User query text
            top_k: Number of results to return (overrides default)
            max_distance: Distance threshold (overrides default)
            folder_name: Only search windows of this folder

        Returns:
            List of RetrievalResult objects, nearest first

        Raises:
            EmbeddingServiceError: If the query cannot be embedded
        """
        if not query or not query.strip():
            logger.warning("empty_query_provided")
            return []

        if top_k is None:
            top_k = self.top_k
        if max_distance is None:
            max_distance = self.max_distance

        if top_k <= 0:
            return []

        logger.info(
            "retrieval_started",
            query_length=len(query),
            top_k=top_k,
            max_distance=max_distance,
            folder_name=folder_name,
        )

        database = self._ensure_database()

        if database.vector_store.ntotal == 0:
            logger.warning("empty_index_no_results")
            return []

        query_embedding = await self.client.embed(query)

        results = database.find_nearest(
            query_embedding,
            k=top_k,
            max_distance=max_distance,
            folder_name=folder_name,
        )

        logger.info(
            "retrieval_completed",
            query_length=len(query),
            results_returned=len(results),
            top_distance=results[0].distance if results else None,
        )

        return results


# Singleton instance for convenience
_retriever_instance: Optional[Retriever] = None


def get_retriever() -> Retriever:
    """Get or create a singleton retriever instance."""
    global _retriever_instance
    if _retriever_instance is None:
        _retriever_instance = Retriever()
    return _retriever_instance


async def query_notes(
    text: str,
    k: Optional[int] = None,
    max_distance: Optional[float] = None,
    folder_name: Optional[str] = None,
) -> List[RetrievalResult]:
    """Retrieve the windows closest to a query (convenience function)."""
    return await get_retriever().retrieve(
        text, top_k=k, max_distance=max_distance, folder_name=folder_name
    )


def list_folders() -> List[str]:
    """List the folders of indexed notes, alphabetically."""
    return get_database().list_folders()


def count_indexed_notes() -> int:
    """Count the notes currently stored."""
    return get_database().count_notes()
