"""Unit tests for the delimited note stream parser."""
import random

import pytest

from notesrag.rag.stream_parser import (
    NoteStreamParser,
    ParserState,
    PendingNote,
    normalize_timestamp,
)
from tests.helpers import render_stream

DELIM = "a1b2c3d4e5f6a7b8"

NOTES = [
    {
        "id": "x-coredata://ICNote/p1",
        "title": "Trip",
        "folderId": "x-coredata://ICFolder/p9",
        "folderName": "Travel",
        "created": "2024-03-01T09:15:00",
        "updated": "2024-03-02T18:40:12",
        "body": "<div>Paris was lovely.</div>\n\n<div>Café crème: 4€</div>",
    },
    {
        "id": "x-coredata://ICNote/p2",
        "title": "Groceries: weekly",
        "folderName": "Home",
        "body": "eggs\nmilk",
    },
]


def _parse(pieces):
    notes = []
    parser = NoteStreamParser(DELIM, on_note=notes.append)
    for piece in pieces:
        parser.feed(piece)
    parser.close()
    return notes, parser


class TestParsing:
    def test_reconstructs_notes(self):
        notes, parser = _parse([render_stream(DELIM, NOTES)])

        assert [n.id for n in notes] == ["x-coredata://ICNote/p1", "x-coredata://ICNote/p2"]
        trip = notes[0]
        assert trip.title == "Trip"
        assert trip.folder_id == "x-coredata://ICFolder/p9"
        assert trip.folder_name == "Travel"
        assert trip.created == "2024-03-01T09:15:00"
        assert trip.updated == "2024-03-02T18:40:12"
        assert trip.body == "<div>Paris was lovely.</div>\n\n<div>Café crème: 4€</div>"
        assert parser.notes_emitted == 2
        assert parser.state is ParserState.AWAITING_NOTE

    def test_metadata_value_keeps_colons(self):
        notes, _ = _parse([render_stream(DELIM, NOTES)])
        assert notes[1].title == "Groceries: weekly"

    def test_missing_fields_default_to_empty(self):
        notes, _ = _parse([render_stream(DELIM, NOTES)])
        assert notes[1].folder_id == ""
        assert notes[1].created == ""

    def test_note_without_id_is_discarded(self):
        stream = render_stream(DELIM, [{"title": "Orphan", "body": "text"}] + NOTES[1:])
        notes, parser = _parse([stream])

        assert [n.title for n in notes] == ["Groceries: weekly"]
        assert parser.notes_discarded == 1

    def test_lines_outside_notes_are_ignored(self):
        stream = "osascript warning: something\n" + render_stream(DELIM, NOTES[1:]) + "trailing noise\n"
        notes, parser = _parse([stream])

        assert len(notes) == 1
        assert parser.notes_discarded == 0

    def test_metadata_after_body_end_is_captured(self):
        stream = "\n".join([
            f"{DELIM}START{DELIM}",
            f"{DELIM}-id: n1",
            f"{DELIM}BODY_START{DELIM}",
            "body",
            f"{DELIM}BODY_END{DELIM}",
            f"{DELIM}-title: Late title",
            f"{DELIM}END{DELIM}",
            "",
        ])
        notes, _ = _parse([stream])
        assert notes[0].title == "Late title"

    def test_body_lines_that_look_like_metadata_stay_in_body(self):
        stream = "\n".join([
            f"{DELIM}START{DELIM}",
            f"{DELIM}-id: n1",
            f"{DELIM}BODY_START{DELIM}",
            f"{DELIM}-title: not metadata",
            f"{DELIM}BODY_END{DELIM}",
            f"{DELIM}END{DELIM}",
            "",
        ])
        notes, _ = _parse([stream])
        assert notes[0].title == ""
        assert notes[0].body == f"{DELIM}-title: not metadata"

    def test_crlf_line_endings(self):
        stream = render_stream(DELIM, NOTES[1:]).replace("\n", "\r\n")
        notes, _ = _parse([stream])
        assert notes[0].body == "eggs\nmilk"

    def test_close_finishes_note_without_end_marker(self):
        stream = "\n".join([
            f"{DELIM}START{DELIM}",
            f"{DELIM}-id: n1",
            f"{DELIM}BODY_START{DELIM}",
            "last line without newline",
        ])
        notes, _ = _parse([stream])
        assert notes[0].id == "n1"
        assert notes[0].body == "last line without newline"

    def test_start_resets_unfinished_note(self):
        stream = "\n".join([
            f"{DELIM}START{DELIM}",
            f"{DELIM}-id: abandoned",
            f"{DELIM}BODY_START{DELIM}",
            "lost",
        ]) + "\n" + render_stream(DELIM, NOTES[1:])
        notes, _ = _parse([stream])
        assert [n.id for n in notes] == ["x-coredata://ICNote/p2"]
        assert notes[0].body == "eggs\nmilk"

    def test_feed_after_close_fails(self):
        parser = NoteStreamParser(DELIM, on_note=lambda note: None)
        parser.close()
        with pytest.raises(RuntimeError):
            parser.feed("more")

    def test_empty_delimiter_rejected(self):
        with pytest.raises(ValueError):
            NoteStreamParser("", on_note=lambda note: None)


class TestFragmentation:
    def test_split_at_every_byte(self):
        data = render_stream(DELIM, NOTES).encode("utf-8")
        expected, _ = _parse([data])
        notes, _ = _parse([data[i:i + 1] for i in range(len(data))])
        assert notes == expected

    @pytest.mark.parametrize("seed", range(20))
    def test_random_split_points(self, seed):
        data = render_stream(DELIM, NOTES * 3).encode("utf-8")
        expected, _ = _parse([data])

        rng = random.Random(seed)
        cuts = sorted(rng.sample(range(1, len(data)), 25))
        bounds = [0] + cuts + [len(data)]
        pieces = [data[a:b] for a, b in zip(bounds, bounds[1:])]

        notes, _ = _parse(pieces)
        assert notes == expected
        assert len(notes) == 6

    def test_multiple_notes_in_one_event(self):
        notes, _ = _parse([render_stream(DELIM, NOTES).encode("utf-8")])
        assert len(notes) == 2


class TestPendingNote:
    def test_unknown_keys_are_ignored(self):
        pending = PendingNote()
        assert pending.set_field("id", "n1") is True
        assert pending.set_field("color", "red") is False
        assert pending.build().id == "n1"

    def test_build_without_id(self):
        assert PendingNote(title="x").build() is None

    def test_normalize_timestamp(self):
        assert normalize_timestamp("2024-03-01T09:15:00") == "2024-03-01T09:15:00"
        assert normalize_timestamp(" 2024-03-01 09:15:00 ") == "2024-03-01T09:15:00"
        assert normalize_timestamp("last Tuesday") == "last Tuesday"
        assert normalize_timestamp(None) == ""
