"""Test doubles shared by the notesrag test suite."""
import asyncio
import math
import sys
import zlib
from typing import Callable, List, Optional

from notesrag.errors import EmbeddingServiceError
from notesrag.rag.source import NotesSource

TEST_DIMENSION = 16


def bag_of_words_vector(text: str, dimension: int = TEST_DIMENSION) -> List[float]:
    """Deterministic unit vector from the words of a text."""
    vector = [0.0] * dimension
    for word in text.lower().replace(".", " ").split():
        vector[zlib.crc32(word.encode("utf-8")) % dimension] += 1.0
    norm = math.sqrt(sum(v * v for v in vector)) or 1.0
    return [v / norm for v in vector]


class FakeEmbeddingClient:
    """Stands in for OllamaClient; optionally fails for chosen texts."""

    model = "fake-embed"

    def __init__(
        self,
        dimension: int = TEST_DIMENSION,
        fail_when: Optional[Callable[[str], bool]] = None,
        delay: float = 0.0,
    ):
        self.dimension = dimension
        self.fail_when = fail_when
        self.delay = delay
        self.calls: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.fail_when and self.fail_when(text):
                raise EmbeddingServiceError("Failed to generate embedding", status_code=500)
            return bag_of_words_vector(text, self.dimension)
        finally:
            self.in_flight -= 1


# Writes argv[1] to stderr in pieces of argv[3] bytes, then exits with argv[2]
_WRITER = """
import sys
data = sys.argv[1].encode("utf-8")
step = int(sys.argv[3])
for i in range(0, len(data), step):
    sys.stderr.buffer.write(data[i:i + step])
    sys.stderr.buffer.flush()
sys.exit(int(sys.argv[2]))
"""


def render_stream(delimiter: str, notes: List[dict]) -> str:
    """Render notes in the source's delimited log format.

    Each dict may hold metadata keys (id, title, folderId, folderName,
    created, updated) and a ``body`` string.
    """
    lines = []
    for note in notes:
        lines.append(f"{delimiter}START{delimiter}")
        for key in ("id", "created", "updated", "folderId", "folderName", "title"):
            if key in note:
                lines.append(f"{delimiter}-{key}: {note[key]}")
        lines.append(f"{delimiter}BODY_START{delimiter}")
        lines.extend(note.get("body", "").split("\n"))
        lines.append(f"{delimiter}BODY_END{delimiter}")
        lines.append(f"{delimiter}END{delimiter}")
    return "\n".join(lines) + "\n"


class ScriptedSource(NotesSource):
    """Record source replaying canned notes through a Python subprocess."""

    def __init__(self, notes: List[dict], exit_code: int = 0, piece_size: int = 7):
        super().__init__(osascript=sys.executable)
        self.notes = notes
        self.exit_code = exit_code
        self.piece_size = piece_size

    def count_command(self) -> List[str]:
        return [sys.executable, "-c", f"print({len(self.notes)})"]

    def extract_command(self, delimiter: str) -> List[str]:
        return [
            sys.executable,
            "-c",
            _WRITER,
            render_stream(delimiter, self.notes),
            str(self.exit_code),
            str(self.piece_size),
        ]
