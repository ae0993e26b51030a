"""Records passed between the pipeline stages."""
from dataclasses import dataclass
from typing import Any, Dict


@dataclass
class Note:
    """One note read from the record source."""

    id: str
    title: str
    folder_id: str
    folder_name: str
    created: str
    updated: str
    body: str = ""


@dataclass
class Window:
    """A header-prefixed slice of a note, before it has an id."""

    note_id: str
    note_title: str
    folder_name: str
    note_updated: str
    chunk_index: int
    content: str


@dataclass
class RetrievalResult:
    """A single retrieved window with its distance to the query."""

    window_id: int
    note_title: str
    note_updated: str
    content: str
    distance: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "window_id": self.window_id,
            "note_title": self.note_title,
            "note_updated": self.note_updated,
            "content": self.content,
            "distance": self.distance,
        }
