"""Incremental parser for the delimited note stream of the record source.

The source prints one block per note, every marker carrying a random
delimiter token ``d`` so it cannot collide with note content::

    dSTARTd
    d-id: x-coredata://.../ICNote/p123
    d-title: Trip
    ...
    dBODY_STARTd
    <div>body lines, verbatim</div>
    dBODY_ENDd
    dENDd

Output arrives in arbitrary pieces, so the parser buffers and only acts on
complete lines. Finished notes are handed to an ``on_note`` callback.
"""
import codecs
import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional, Union
import structlog

from notesrag.models import Note

logger = structlog.get_logger()


class ParserState(enum.Enum):
    AWAITING_NOTE = "awaiting_note"
    IN_METADATA = "in_metadata"
    IN_BODY = "in_body"


# Source metadata keys -> PendingNote attributes
METADATA_FIELDS = {
    "id": "id",
    "title": "title",
    "folderId": "folder_id",
    "folderName": "folder_name",
    "created": "created",
    "updated": "updated",
}


def normalize_timestamp(value: Optional[str]) -> str:
    """Return an ISO-8601 form of a source timestamp, or the raw value."""
    if not value:
        return ""
    value = value.strip()
    try:
        return datetime.fromisoformat(value).isoformat()
    except ValueError:
        return value


@dataclass
class PendingNote:
    """A note under construction; fields fill in as metadata lines arrive."""

    id: Optional[str] = None
    title: Optional[str] = None
    folder_id: Optional[str] = None
    folder_name: Optional[str] = None
    created: Optional[str] = None
    updated: Optional[str] = None
    body_lines: List[str] = field(default_factory=list)

    def set_field(self, key: str, value: str) -> bool:
        """Store a metadata value; unknown keys are ignored.

        Returns:
            True if the key was recognized
        """
        attribute = METADATA_FIELDS.get(key)
        if attribute is None:
            return False
        setattr(self, attribute, value)
        return True

    def build(self) -> Optional[Note]:
        """Validate and freeze the note; None when it has no id."""
        if not self.id:
            return None

        return Note(
            id=self.id,
            title=self.title or "",
            folder_id=self.folder_id or "",
            folder_name=self.folder_name or "",
            created=normalize_timestamp(self.created),
            updated=normalize_timestamp(self.updated),
            body="\n".join(self.body_lines),
        )


class NoteStreamParser:
    """State machine turning source output into Note objects."""

    def __init__(
        self,
        delimiter: str,
        on_note: Callable[[Note], None],
        encoding: str = "utf-8",
    ):
        """Initialize the parser.

        Args:
            delimiter: Random token embedded in every marker line
            on_note: Called once per completed note, in stream order
            encoding: Encoding of byte input
        """
        if not delimiter:
            raise ValueError("delimiter must be a non-empty string")

        self.delimiter = delimiter
        self.on_note = on_note

        self.start_marker = f"{delimiter}START{delimiter}"
        self.body_start_marker = f"{delimiter}BODY_START{delimiter}"
        self.body_end_marker = f"{delimiter}BODY_END{delimiter}"
        self.end_marker = f"{delimiter}END{delimiter}"
        self.metadata_prefix = f"{delimiter}-"

        self.state = ParserState.AWAITING_NOTE
        self.pending: Optional[PendingNote] = None

        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._buffer = ""
        self._closed = False

        self.notes_emitted = 0
        self.notes_discarded = 0
        self.lines_processed = 0

    def feed(self, data: Union[bytes, str]) -> None:
        """Consume one piece of source output.

        The piece may end mid-line (or mid-character for bytes); the tail is
        kept until the next call.
        """
        if self._closed:
            raise RuntimeError("feed() called after close()")

        if isinstance(data, bytes):
            data = self._decoder.decode(data)

        self._buffer += data
        *lines, self._buffer = self._buffer.split("\n")

        for line in lines:
            self._process_line(line)

    def close(self) -> None:
        """Flush the last partial line and finish a note left open.

        A started note that already has an id is emitted even without an END
        marker, since the source may exit right after its last body line.
        """
        if self._closed:
            return

        self._buffer += self._decoder.decode(b"", final=True)
        if self._buffer:
            tail, self._buffer = self._buffer, ""
            self._process_line(tail)

        if self.pending is not None:
            self._finish_note()

        self._closed = True

    def _process_line(self, line: str) -> None:
        self.lines_processed += 1

        if line.endswith("\r"):
            line = line[:-1]
        marker = line.strip()

        if marker == self.start_marker:
            self.pending = PendingNote()
            self.state = ParserState.IN_METADATA
            return

        if marker == self.body_start_marker:
            if self.pending is not None:
                self.state = ParserState.IN_BODY
            return

        if marker == self.body_end_marker:
            if self.pending is not None:
                self.state = ParserState.IN_METADATA
            return

        if marker == self.end_marker:
            if self.pending is not None:
                self._finish_note()
            return

        if self.state is ParserState.IN_METADATA and marker.startswith(self.metadata_prefix):
            key, _, value = marker[len(self.metadata_prefix):].partition(": ")
            if not self.pending.set_field(key, value):
                logger.debug("unknown_metadata_key", key=key)
            return

        if self.state is ParserState.IN_BODY:
            self.pending.body_lines.append(line)

    def _finish_note(self) -> None:
        pending, self.pending = self.pending, None
        self.state = ParserState.AWAITING_NOTE

        note = pending.build()
        if note is None:
            self.notes_discarded += 1
            logger.debug("note_discarded_missing_id", title=pending.title)
            return

        self.notes_emitted += 1
        self.on_note(note)
