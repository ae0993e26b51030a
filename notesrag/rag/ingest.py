"""Ingest pipeline for indexing notes from the record source.

Orchestrates:
- Clearing the previous index
- Streaming notes out of the source process
- Text normalization and windowing
- Embedding generation
- Window and vector storage
"""
import asyncio
from typing import Any, Callable, Dict, List, Optional, Union
import structlog

from notesrag import config
from notesrag.db import NotesDatabase, get_database
from notesrag.errors import (
    ConfigurationError,
    EmbeddingServiceError,
    SourceStreamError,
    StorageWriteError,
)
from notesrag.llm_client import OllamaClient, ollama_client
from notesrag.models import Note, Window
from notesrag.rag.chunker import CharChunker
from notesrag.rag.normalizer import normalize
from notesrag.rag.source import NotesSource, new_delimiter
from notesrag.rag.stream_parser import NoteStreamParser

logger = structlog.get_logger()

ProgressCallback = Callable[[int, Optional[int], str], None]

# Marks the end of the note queue
_DONE = object()


def _new_stats() -> Dict[str, Any]:
    return {
        "notes_total": None,
        "notes_seen": 0,
        "notes_saved": 0,
        "notes_failed": 0,
        "notes_discarded": 0,
        "windows_saved": 0,
        "windows_failed": 0,
    }


class IngestPipeline:
    """Pipeline for ingesting source notes into the RAG store."""

    def __init__(
        self,
        database: Optional[NotesDatabase] = None,
        client: Optional[OllamaClient] = None,
        source: Optional[NotesSource] = None,
        max_chars: int = None,
        overlap: int = None,
        embed_concurrency: int = None,
        queue_size: int = None,
    ):
        """Initialize the ingest pipeline.

        Args:
            database: Storage engine (default: shared instance)
            client: Embedding client (default: shared Ollama client)
            source: Record source (default: osascript Notes source)
            max_chars: Window size in characters, header included (default from config)
            overlap: Window overlap in characters (default from config)
            embed_concurrency: Embedding requests in flight per note
            queue_size: Parsed notes buffered ahead of the finalizer

        Raises:
            ConfigurationError: If the window sizing is unusable
        """
        self.database = database
        self.client = client or ollama_client
        self.source = source or NotesSource()
        self.chunker = CharChunker(max_chars=max_chars, overlap=overlap)
        self.embed_concurrency = embed_concurrency or config.EMBED_CONCURRENCY

        if self.embed_concurrency < 1:
            raise ConfigurationError(
                f"Embedding concurrency must be at least 1, got {self.embed_concurrency}"
            )

        self.queue_size = config.INGEST_QUEUE_SIZE if queue_size is None else queue_size
        if self.queue_size < 1:
            raise ConfigurationError(
                f"Ingest queue size must be at least 1, got {self.queue_size}"
            )

        self.stats = _new_stats()
        self._queue: Optional[asyncio.Queue] = None

        logger.info(
            "ingest_pipeline_initialized",
            embedding_model=self.client.model,
            max_chars=self.chunker.max_chars,
            overlap=self.chunker.overlap,
            embed_concurrency=self.embed_concurrency,
            queue_size=self.queue_size,
        )

    def _ensure_database(self) -> NotesDatabase:
        if self.database is None:
            self.database = get_database()
        return self.database

    async def count_source_notes(self) -> int:
        """Count the notes the source currently holds."""
        return await self.source.count_notes()

    async def _embed_windows(
        self, windows: List[str]
    ) -> List[Union[List[float], EmbeddingServiceError]]:
        """Embed all windows of a note with bounded concurrency.

        Returns:
            One entry per window: the vector, or the error for that window
        """
        semaphore = asyncio.Semaphore(self.embed_concurrency)

        async def embed_one(text: str):
            async with semaphore:
                try:
                    return await self.client.embed(text)
                except EmbeddingServiceError as e:
                    return e

        return await asyncio.gather(*(embed_one(text) for text in windows))

    async def ingest_note(self, note: Note) -> Dict[str, Any]:
        """Normalize, store, window, embed and save a single note.

        Failures are logged and counted; nothing is raised for a bad note
        or window.

        Returns:
            Dictionary with per-note results
        """
        database = self._ensure_database()
        body = normalize(note.body)

        try:
            database.upsert_note(note)
        except StorageWriteError as e:
            self.stats["notes_failed"] += 1
            logger.error("note_save_failed", note_id=note.id, title=note.title, error=str(e))
            return {"note_id": note.id, "saved": False, "windows_saved": 0}

        # A stored row without windows still counts as a failed note
        try:
            windows = self.chunker.create_windows(body, note.title)
        except ConfigurationError as e:
            self.stats["notes_failed"] += 1
            logger.error("note_windowing_failed", note_id=note.id, title=note.title, error=str(e))
            return {"note_id": note.id, "saved": False, "windows_saved": 0}

        self.stats["notes_saved"] += 1

        logger.debug(
            "note_windowed",
            note_id=note.id,
            title=note.title,
            body_length=len(body),
            window_count=len(windows),
        )

        embeddings = await self._embed_windows(windows)

        saved = 0
        for chunk_index, (content, embedding) in enumerate(zip(windows, embeddings)):
            if isinstance(embedding, EmbeddingServiceError):
                self.stats["windows_failed"] += 1
                logger.error(
                    "window_embedding_failed",
                    note_id=note.id,
                    chunk_index=chunk_index,
                    error=str(embedding),
                )
                continue

            window = Window(
                note_id=note.id,
                note_title=note.title,
                folder_name=note.folder_name,
                note_updated=note.updated,
                chunk_index=chunk_index,
                content=content,
            )

            try:
                window_id = database.save_window(window, embedding)
            except StorageWriteError as e:
                self.stats["windows_failed"] += 1
                logger.error(
                    "window_skipped",
                    note_id=note.id,
                    chunk_index=chunk_index,
                    error=str(e),
                )
                continue

            saved += 1
            self.stats["windows_saved"] += 1
            logger.debug(
                "window_saved",
                window_id=window_id,
                note_id=note.id,
                chunk_index=chunk_index,
                content_preview=content[:50],
            )

        logger.info(
            "note_ingested",
            note_id=note.id,
            title=note.title,
            windows_created=len(windows),
            windows_saved=saved,
        )

        return {"note_id": note.id, "saved": True, "windows_saved": saved}

    async def _consume(
        self, queue: asyncio.Queue, progress_callback: Optional[ProgressCallback]
    ) -> None:
        """Finalize queued notes one at a time, in arrival order."""
        while True:
            note = await queue.get()
            if note is _DONE:
                return

            self.stats["notes_seen"] += 1
            if progress_callback:
                progress_callback(self.stats["notes_seen"], self.stats["notes_total"], note.title)

            await self.ingest_note(note)

    async def _hand_off(
        self, queue: asyncio.Queue, consumer: asyncio.Task, items: List[Any]
    ) -> None:
        """Queue parsed notes, waiting while the finalizer is behind.

        Raises:
            Whatever stopped the finalizer, if it stops before taking the items
        """
        for item in items:
            put = asyncio.ensure_future(queue.put(item))
            stalled = False
            try:
                await asyncio.wait({put, consumer}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                if not put.done():
                    put.cancel()
                    stalled = True

            if stalled:
                await consumer
                raise RuntimeError("Note finalizer stopped before the source closed")

        items.clear()

    async def ingest_all(
        self, progress_callback: Optional[ProgressCallback] = None
    ) -> Dict[str, Any]:
        """Clear the store and re-ingest every note from the source.

        The source reader hands parsed notes to a bounded queue, so it stops
        reading while the finalizer is ``queue_size`` notes behind.

        Args:
            progress_callback: Optional callback(current, total, title)

        Returns:
            Dictionary with ingestion statistics

        Raises:
            SourceStreamError: If the source cannot run or exits non-zero
            StorageWriteError: If the store cannot be cleared
        """
        database = self._ensure_database()
        self.stats = _new_stats()

        logger.info("starting_ingest_all")

        database.clear_all()
        self.stats["notes_total"] = await self.count_source_notes()

        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        self._queue = queue
        parsed: List[Note] = []
        parser = NoteStreamParser(new_delimiter(), on_note=parsed.append)

        process = await self.source.spawn(parser.delimiter)
        stream = getattr(process, self.source.stream)

        consumer = asyncio.create_task(self._consume(queue, progress_callback))

        try:
            while True:
                data = await stream.read(config.SOURCE_READ_SIZE)
                if not data:
                    break
                parser.feed(data)
                await self._hand_off(queue, consumer, parsed)

            exit_code = await process.wait()
            parser.close()
            await self._hand_off(queue, consumer, parsed)

            # Let queued notes drain before reporting
            await self._hand_off(queue, consumer, [_DONE])
            await consumer

        except BaseException:
            consumer.cancel()
            if process.returncode is None:
                process.kill()
            raise

        self.stats["notes_discarded"] = parser.notes_discarded

        logger.info("ingest_all_completed", exit_code=exit_code, stats=self.stats)

        if exit_code != 0:
            raise SourceStreamError(
                f"Notes extraction failed with code {exit_code}",
                exit_code=exit_code,
                stats=dict(self.stats),
            )

        return self.stats


# Convenience functions for the entry points
async def run_full_ingestion(
    progress_callback: Optional[ProgressCallback] = None,
) -> Dict[str, Any]:
    """Clear everything and ingest all source notes.

    Args:
        progress_callback: Optional callback(current, total, title)

    Returns:
        Ingestion statistics
    """
    pipeline = IngestPipeline()
    return await pipeline.ingest_all(progress_callback=progress_callback)


async def count_source_notes() -> int:
    """Count the notes held by the record source."""
    return await NotesSource().count_notes()
