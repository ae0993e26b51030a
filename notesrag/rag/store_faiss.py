"""FAISS vector index over window embeddings.

Vectors are keyed by window id (IndexIDMap2 over an exact IndexFlatL2), so
search results map straight back to rows of the windows table. The index
lives in memory and is rebuilt from the embeddings table on startup.
"""
from typing import Iterable, List, Optional, Sequence, Tuple
import numpy as np
import faiss
import structlog

from notesrag import config

logger = structlog.get_logger()


class FAISSVectorStore:
    """In-memory FAISS index keyed by window id."""

    def __init__(self, dimension: int = None):
        """Initialize an empty index.

        Args:
            dimension: Embedding dimension (default from config)
        """
        self.dimension = dimension or config.EMBEDDING_DIMENSION
        self.index: Optional[faiss.Index] = None
        self.reset()

    def reset(self) -> None:
        """Drop every vector and start from an empty index."""
        # IndexFlatL2: exact search, fine for a personal notes corpus
        self.index = faiss.IndexIDMap2(faiss.IndexFlatL2(self.dimension))
        logger.debug("faiss_index_reset", dimension=self.dimension)

    @property
    def ntotal(self) -> int:
        return self.index.ntotal

    def _as_matrix(self, vectors: Sequence[Sequence[float]]) -> np.ndarray:
        matrix = np.asarray(vectors, dtype=np.float32)
        if matrix.ndim != 2 or matrix.shape[1] != self.dimension:
            raise ValueError(
                f"Embedding dimension mismatch: expected {self.dimension}, "
                f"got shape {matrix.shape}"
            )
        return np.ascontiguousarray(matrix)

    def add_vectors(
        self, window_ids: Sequence[int], vectors: Sequence[Sequence[float]]
    ) -> None:
        """Add vectors under the given window ids.

        Raises:
            ValueError: On dimension or length mismatch
        """
        if len(window_ids) != len(vectors):
            raise ValueError("window_ids and vectors must have the same length")
        if not window_ids:
            return

        ids = np.asarray(window_ids, dtype=np.int64)
        self.index.add_with_ids(self._as_matrix(vectors), ids)

    def remove_vectors(self, window_ids: Iterable[int]) -> int:
        """Remove vectors by window id.

        Returns:
            Number of vectors removed
        """
        ids = np.asarray(list(window_ids), dtype=np.int64)
        if ids.size == 0:
            return 0
        return int(self.index.remove_ids(ids))

    def load(self, rows: Iterable[Tuple[int, bytes]]) -> int:
        """Rebuild the index from (window_id, float32 blob) rows.

        Returns:
            Number of vectors loaded
        """
        self.reset()

        ids = []
        vectors = []
        for window_id, blob in rows:
            ids.append(window_id)
            vectors.append(np.frombuffer(blob, dtype="<f4"))

        if ids:
            self.add_vectors(ids, vectors)

        logger.info("faiss_index_loaded", vector_count=self.ntotal)
        return self.ntotal

    def search(
        self, query_vector: Sequence[float], top_k: int
    ) -> Tuple[List[int], List[float]]:
        """Search for the nearest vectors.

        Args:
            query_vector: Query embedding
            top_k: Number of neighbours to return

        Returns:
            Tuple of (window_ids, L2 distances), nearest first
        """
        top_k = min(top_k, self.ntotal)
        if top_k <= 0:
            return [], []

        query = self._as_matrix([query_vector])
        distances, indices = self.index.search(query, top_k)

        window_ids = []
        l2_distances = []
        for window_id, squared in zip(indices[0].tolist(), distances[0].tolist()):
            if window_id == -1:
                continue
            window_ids.append(int(window_id))
            # IndexFlatL2 reports squared L2
            l2_distances.append(float(np.sqrt(max(squared, 0.0))))

        logger.debug(
            "vector_search_completed",
            top_k=top_k,
            results_found=len(window_ids),
        )

        return window_ids, l2_distances


def vector_to_blob(vector: Sequence[float]) -> bytes:
    """Serialize a vector as little-endian float32 bytes."""
    return np.asarray(vector, dtype="<f4").tobytes()
