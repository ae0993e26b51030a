"""Database and vector storage for ingested notes.

SQLite holds three tables:
- notes: one row per source note, upserted by id
- windows: header-prefixed text windows, cascade-deleted with their note
- embeddings: one float32 vector per window, written in the same
  transaction as the window row

The FAISS index is rebuilt from the embeddings table on startup and updated
after every committed window, so SQLite stays the source of truth.
"""
import sqlite3
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence
import structlog

from notesrag import config
from notesrag.errors import SchemaInitializationError, StorageWriteError
from notesrag.models import Note, RetrievalResult, Window
from notesrag.rag.store_faiss import FAISSVectorStore, vector_to_blob

logger = structlog.get_logger()

TABLES = ("embeddings", "windows", "notes")

# Keeps IN (...) lists below SQLite's bound-parameter limit
_ID_BATCH = 500


class NotesDatabase:
    """Storage engine: transactional note/window/vector writes and KNN search."""

    def __init__(
        self,
        db_path: Path = None,
        dimension: int = None,
        window_id_start: int = None,
    ):
        """Open the database, create the schema and load the vector index.

        Args:
            db_path: SQLite file path (default from config)
            dimension: Embedding dimension (default from config)
            window_id_start: First window id issued after a clear

        Raises:
            SchemaInitializationError: If the schema or index cannot be loaded
        """
        self.db_path = Path(db_path or config.DB_PATH)
        self.dimension = dimension or config.EMBEDDING_DIMENSION
        self.window_id_start = (
            config.WINDOW_ID_START if window_id_start is None else window_id_start
        )
        self.vector_store = FAISSVectorStore(dimension=self.dimension)

        self.init_database()
        self.load_vector_index()

    def get_connection(self) -> sqlite3.Connection:
        """Get a connection with foreign keys enforced.

        Transactions are managed explicitly (autocommit mode), because
        ``PRAGMA foreign_keys`` is ignored inside an open transaction.

        Returns:
            sqlite3.Connection with row_factory set to sqlite3.Row
        """
        conn = sqlite3.connect(self.db_path, timeout=30.0, isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys=ON")
        return conn

    def init_database(self) -> None:
        """Create tables if they don't exist.

        Raises:
            SchemaInitializationError: On any SQLite error
        """
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = self.get_connection()
        except (OSError, sqlite3.Error) as e:
            logger.error("database_open_failed", error=str(e), db_path=str(self.db_path))
            raise SchemaInitializationError(f"Cannot open database: {e}") from e

        try:
            conn.execute("BEGIN")

            conn.execute("""
                CREATE TABLE IF NOT EXISTS notes (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    folder_id TEXT NOT NULL,
                    folder_name TEXT NOT NULL,
                    created TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
                    updated TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS windows (
                    window_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    note_id TEXT NOT NULL
                        REFERENCES notes(id) ON DELETE CASCADE,
                    note_title TEXT NOT NULL,
                    folder_name TEXT NOT NULL,
                    note_updated TEXT NOT NULL,
                    chunk_index INTEGER NOT NULL,
                    content TEXT NOT NULL
                )
            """)

            conn.execute(f"""
                CREATE TABLE IF NOT EXISTS embeddings (
                    window_id INTEGER PRIMARY KEY
                        REFERENCES windows(window_id) ON DELETE CASCADE,
                    folder_name TEXT NOT NULL,
                    vector BLOB NOT NULL CHECK (length(vector) = {4 * self.dimension})
                )
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_windows_note_id
                ON windows(note_id)
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_embeddings_folder_name
                ON embeddings(folder_name)
            """)

            # Seed the window id sequence on a fresh database
            row = conn.execute(
                "SELECT seq FROM sqlite_sequence WHERE name = 'windows'"
            ).fetchone()
            if row is None:
                self._reset_window_sequence(conn)

            conn.execute("COMMIT")
            logger.info("database_initialized", db_path=str(self.db_path))

        except sqlite3.Error as e:
            if conn.in_transaction:
                conn.rollback()
            logger.error("database_init_failed", error=str(e))
            raise SchemaInitializationError(f"Schema initialization failed: {e}") from e
        finally:
            conn.close()

    def _reset_window_sequence(self, conn: sqlite3.Connection) -> None:
        conn.execute("DELETE FROM sqlite_sequence WHERE name = 'windows'")
        conn.execute(
            "INSERT INTO sqlite_sequence (name, seq) VALUES ('windows', ?)",
            (self.window_id_start - 1,),
        )

    def load_vector_index(self) -> int:
        """Rebuild the FAISS index from stored embeddings.

        Returns:
            Number of vectors loaded

        Raises:
            SchemaInitializationError: If stored vectors cannot be loaded
        """
        conn = self.get_connection()

        try:
            rows = conn.execute(
                "SELECT window_id, vector FROM embeddings ORDER BY window_id"
            ).fetchall()
            return self.vector_store.load(
                (row["window_id"], row["vector"]) for row in rows
            )

        except (sqlite3.Error, ValueError) as e:
            logger.error("vector_index_load_failed", error=str(e))
            raise SchemaInitializationError(f"Failed to load vector index: {e}") from e
        finally:
            conn.close()

    def upsert_note(self, note: Note) -> None:
        """Insert a note, or update it in place when the id already exists.

        Updating in place keeps the windows already stored for the note.

        Raises:
            StorageWriteError: If the write fails
        """
        conn = self.get_connection()

        try:
            conn.execute("""
                INSERT INTO notes (id, title, folder_id, folder_name, created, updated)
                VALUES (?, ?, ?, ?,
                        COALESCE(?, CURRENT_TIMESTAMP),
                        COALESCE(?, CURRENT_TIMESTAMP))
                ON CONFLICT(id) DO UPDATE SET
                    title = excluded.title,
                    folder_id = excluded.folder_id,
                    folder_name = excluded.folder_name,
                    created = excluded.created,
                    updated = excluded.updated
            """, (
                note.id,
                note.title,
                note.folder_id,
                note.folder_name,
                note.created or None,
                note.updated or None,
            ))

        except sqlite3.Error as e:
            logger.error("note_upsert_failed", error=str(e), note_id=note.id)
            raise StorageWriteError(f"Failed to save note {note.id}: {e}") from e
        finally:
            conn.close()

    def save_window(self, window: Window, vector: Sequence[float]) -> int:
        """Write a window and its embedding in one transaction.

        Args:
            window: Window metadata and content
            vector: Embedding of ``window.content``

        Returns:
            The window id issued by the database

        Raises:
            StorageWriteError: If either write fails or the vector is not numeric;
                nothing is committed
        """
        conn = self.get_connection()

        try:
            conn.execute("BEGIN")

            cursor = conn.execute("""
                INSERT INTO windows (
                    note_id, note_title, folder_name, note_updated,
                    chunk_index, content
                ) VALUES (?, ?, ?, ?, ?, ?)
            """, (
                window.note_id,
                window.note_title,
                window.folder_name,
                window.note_updated,
                window.chunk_index,
                window.content,
            ))
            window_id = cursor.lastrowid

            conn.execute("""
                INSERT INTO embeddings (window_id, folder_name, vector)
                VALUES (?, ?, ?)
            """, (
                window_id,
                window.folder_name,
                vector_to_blob(vector),
            ))

            conn.execute("COMMIT")

        except (sqlite3.Error, ValueError, TypeError) as e:
            if conn.in_transaction:
                conn.rollback()
            logger.error(
                "window_save_failed",
                error=str(e),
                note_id=window.note_id,
                chunk_index=window.chunk_index,
            )
            raise StorageWriteError(
                f"Failed to save window {window.chunk_index} of note {window.note_id}: {e}"
            ) from e
        finally:
            conn.close()

        self.vector_store.add_vectors([window_id], [vector])
        return window_id

    def clear_all(self) -> None:
        """Delete every note, window and embedding.

        Foreign keys are switched off for the duration so the tables can be
        emptied in any order, and the window id sequence starts over.

        Raises:
            StorageWriteError: If the clear fails (nothing is deleted)
        """
        conn = self.get_connection()

        try:
            conn.execute("PRAGMA foreign_keys=OFF")
            conn.execute("BEGIN")
            for table in TABLES:
                conn.execute(f"DELETE FROM {table}")
            self._reset_window_sequence(conn)
            conn.execute("COMMIT")

        except sqlite3.Error as e:
            if conn.in_transaction:
                conn.rollback()
            logger.error("clear_all_failed", error=str(e))
            raise StorageWriteError(f"Failed to clear tables: {e}") from e
        finally:
            conn.execute("PRAGMA foreign_keys=ON")
            conn.close()

        self.vector_store.reset()
        logger.info("all_tables_cleared")

    def delete_note(self, note_id: str) -> int:
        """Delete one note; its windows and embeddings go with it.

        Returns:
            Number of windows removed

        Raises:
            StorageWriteError: If the delete fails
        """
        conn = self.get_connection()

        try:
            conn.execute("BEGIN")
            window_ids = [
                row["window_id"]
                for row in conn.execute(
                    "SELECT window_id FROM windows WHERE note_id = ?", (note_id,)
                )
            ]
            conn.execute("DELETE FROM notes WHERE id = ?", (note_id,))
            conn.execute("COMMIT")

        except sqlite3.Error as e:
            if conn.in_transaction:
                conn.rollback()
            logger.error("note_delete_failed", error=str(e), note_id=note_id)
            raise StorageWriteError(f"Failed to delete note {note_id}: {e}") from e
        finally:
            conn.close()

        self.vector_store.remove_vectors(window_ids)
        logger.info("note_deleted", note_id=note_id, windows_removed=len(window_ids))
        return len(window_ids)

    def count_notes(self) -> int:
        """Get the number of stored notes."""
        conn = self.get_connection()
        try:
            return conn.execute("SELECT COUNT(*) FROM notes").fetchone()[0]
        finally:
            conn.close()

    def count_windows(self) -> int:
        """Get the number of stored windows."""
        conn = self.get_connection()
        try:
            return conn.execute("SELECT COUNT(*) FROM windows").fetchone()[0]
        finally:
            conn.close()

    def list_folders(self) -> List[str]:
        """Get the distinct folder names of stored notes, alphabetically."""
        conn = self.get_connection()
        try:
            rows = conn.execute("""
                SELECT DISTINCT folder_name
                FROM notes
                ORDER BY folder_name ASC
            """).fetchall()
            return [row["folder_name"] for row in rows]
        finally:
            conn.close()

    def get_windows(self, note_id: str) -> List[Dict[str, Any]]:
        """Get the stored windows of a note in chunk order."""
        conn = self.get_connection()
        try:
            rows = conn.execute("""
                SELECT window_id, note_id, note_title, folder_name,
                       note_updated, chunk_index, content
                FROM windows
                WHERE note_id = ?
                ORDER BY chunk_index ASC
            """, (note_id,)).fetchall()
            return [dict(row) for row in rows]
        finally:
            conn.close()

    def find_nearest(
        self,
        query_vector: Sequence[float],
        k: int = None,
        max_distance: float = None,
        folder_name: Optional[str] = None,
    ) -> List[RetrievalResult]:
        """Find the stored windows closest to a query vector.

        Args:
            query_vector: Query embedding
            k: Maximum number of results (default from config)
            max_distance: Results must be strictly closer than this (default from config)
            folder_name: Only return windows from this folder

        Returns:
            RetrievalResult list ordered by ascending L2 distance
        """
        k = config.RETRIEVAL_TOP_K if k is None else k
        if max_distance is None:
            max_distance = config.RETRIEVAL_MAX_DISTANCE

        if k <= 0 or self.vector_store.ntotal == 0:
            return []

        # A folder filter can discard neighbours, so rank the whole index then
        search_k = self.vector_store.ntotal if folder_name is not None else k
        window_ids, distances = self.vector_store.search(query_vector, search_k)

        candidates = {
            window_id: distance
            for window_id, distance in zip(window_ids, distances)
            if distance < max_distance
        }
        if not candidates:
            return []

        rows = self._fetch_windows(list(candidates), folder_name)

        results = [
            RetrievalResult(
                window_id=row["window_id"],
                note_title=row["note_title"],
                note_updated=row["note_updated"],
                content=row["content"],
                distance=candidates[row["window_id"]],
            )
            for row in rows
        ]
        results.sort(key=lambda r: (r.distance, r.window_id))

        logger.debug(
            "nearest_windows_found",
            k=k,
            max_distance=max_distance,
            folder_name=folder_name,
            results_found=len(results[:k]),
        )

        return results[:k]

    def _fetch_windows(
        self, window_ids: List[int], folder_name: Optional[str]
    ) -> List[sqlite3.Row]:
        conn = self.get_connection()

        try:
            rows = []
            for start in range(0, len(window_ids), _ID_BATCH):
                batch = window_ids[start:start + _ID_BATCH]
                placeholders = ",".join("?" * len(batch))
                sql = f"""
                    SELECT w.window_id, w.note_title, w.note_updated, w.content
                    FROM windows w
                    JOIN embeddings e ON e.window_id = w.window_id
                    WHERE w.window_id IN ({placeholders})
                """
                params = list(batch)
                if folder_name is not None:
                    sql += " AND e.folder_name = ?"
                    params.append(folder_name)
                rows.extend(conn.execute(sql, params).fetchall())
            return rows
        finally:
            conn.close()

    def get_stats(self) -> Dict[str, Any]:
        """Get statistics about the stored corpus."""
        return {
            "db_path": str(self.db_path),
            "notes": self.count_notes(),
            "windows": self.count_windows(),
            "vectors": self.vector_store.ntotal,
            "dimension": self.dimension,
        }


# Singleton instance for convenience
_database_instance: Optional[NotesDatabase] = None


def get_database() -> NotesDatabase:
    """Get or create the shared database instance."""
    global _database_instance
    if _database_instance is None:
        _database_instance = NotesDatabase()
    return _database_instance
