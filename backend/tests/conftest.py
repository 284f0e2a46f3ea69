"""
Pytest configuration for the media catalog tests.
"""

import io

import pytest

from app.db import ensure_schema
from app.services.media_repository import MediaRepository


def pytest_configure(config):
    """Mark the service as ready for tests (bypasses warmup middleware).

    TestClient only triggers lifespan events inside a ``with`` block.
    """
    from main import set_ready
    set_ready(True)


@pytest.fixture
def db_path(tmp_path):
    """Create a fresh DB with schema applied."""
    path = str(tmp_path / "test.db")
    ensure_schema(path)
    return path


@pytest.fixture
def repo(db_path):
    repository = MediaRepository(db_path=db_path)
    yield repository
    repository.close()


def make_csv(header: list[str], rows: list[list[str]]) -> io.BytesIO:
    """Build an in-memory CSV upload from a header and rows."""
    import csv

    text = io.StringIO()
    writer = csv.writer(text)
    writer.writerow(header)
    writer.writerows(rows)
    return io.BytesIO(text.getvalue().encode("utf-8"))


def fetch_row(db_path: str, external_id: str):
    """Read a raw media_items row straight from SQLite."""
    import sqlite3

    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    row = conn.execute("SELECT * FROM media_items WHERE external_id = ?", (external_id,)).fetchone()
    conn.close()
    return row
