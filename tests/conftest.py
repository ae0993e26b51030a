"""Shared pytest fixtures for the notesrag test suite."""
import os
import tempfile

# Keep the data directory out of the source tree during tests
os.environ.setdefault("NOTESRAG_DATA_DIR", tempfile.mkdtemp(prefix="notesrag-tests-"))

import pytest

from notesrag.db import NotesDatabase
from tests.helpers import TEST_DIMENSION, FakeEmbeddingClient


@pytest.fixture
def database(tmp_path) -> NotesDatabase:
    """A fresh database with small test vectors."""
    return NotesDatabase(db_path=tmp_path / "notes.sqlite", dimension=TEST_DIMENSION)


@pytest.fixture
def fake_client() -> FakeEmbeddingClient:
    return FakeEmbeddingClient()
