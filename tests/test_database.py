"""Tests for database initialization."""

import sqlite3
from pathlib import Path

import pytest

from novelsync.storage.database import get_connection, initialize_database


def _tables(db_path: Path) -> list[str]:
    conn = sqlite3.connect(str(db_path))
    cursor = conn.execute("SELECT name FROM sqlite_master WHERE type='table' ORDER BY name")
    tables = [row[0] for row in cursor.fetchall()]
    conn.close()
    return tables


def _columns(db_path: Path, table: str) -> dict[str, str]:
    conn = sqlite3.connect(str(db_path))
    cursor = conn.execute(f"PRAGMA table_info({table})")
    columns = {row[1]: row[2] for row in cursor.fetchall()}
    conn.close()
    return columns


class TestInitializeDatabase:
    def test_creates_tables(self, tmp_path: Path) -> None:
        db_path = tmp_path / "test.db"
        initialize_database(db_path)

        tables = _tables(db_path)
        for table in ("books", "chunk_jobs", "active_chunk_jobs", "chunks", "sync_jobs"):
            assert table in tables

    def test_idempotent(self, tmp_path: Path) -> None:
        db_path = tmp_path / "test.db"
        initialize_database(db_path)
        initialize_database(db_path)  # Should not raise

        assert "books" in _tables(db_path)

    def test_creates_parent_directories(self, tmp_path: Path) -> None:
        db_path = tmp_path / "nested" / "dir" / "test.db"
        initialize_database(db_path)
        assert db_path.exists()

    def test_books_table_schema(self, tmp_path: Path) -> None:
        db_path = tmp_path / "test.db"
        initialize_database(db_path)

        columns = _columns(db_path, "books")
        for name in (
            "id",
            "title",
            "author",
            "source_path",
            "rebuild_chunks",
            "last_synced_at",
            "remote_container_id",
            "sync_enabled",
        ):
            assert name in columns

    def test_chunks_table_schema(self, tmp_path: Path) -> None:
        db_path = tmp_path / "test.db"
        initialize_database(db_path)

        columns = _columns(db_path, "chunks")
        for name in (
            "chunk_job_id",
            "chunk_number",
            "total_chunks",
            "first_chapter",
            "last_chapter",
            "chapters_data",
            "remote_note_id",
            "superseded",
        ):
            assert name in columns

    def test_chunk_number_unique_per_job(self, tmp_path: Path) -> None:
        db_path = tmp_path / "test.db"
        initialize_database(db_path)

        conn = get_connection(db_path)
        conn.execute("INSERT INTO books (title) VALUES ('書')")
        conn.execute(
            "INSERT INTO chunk_jobs (book_id, chunk_size, created_at) VALUES (1, 10, '2024-01-01')"
        )
        insert = (
            "INSERT INTO chunks (chunk_job_id, book_id, chunk_number, total_chunks, "
            "content, line_start, line_end) VALUES (1, 1, 1, 1, 'x', 1, 1)"
        )
        conn.execute(insert)
        with pytest.raises(sqlite3.IntegrityError):
            conn.execute(insert)
        conn.close()


class TestGetConnection:
    def test_returns_connection_with_row_factory(self, tmp_path: Path) -> None:
        db_path = tmp_path / "test.db"
        initialize_database(db_path)

        conn = get_connection(db_path)
        assert conn.row_factory == sqlite3.Row
        conn.close()

    def test_wal_mode_enabled(self, tmp_path: Path) -> None:
        db_path = tmp_path / "test.db"
        initialize_database(db_path)

        conn = get_connection(db_path)
        cursor = conn.execute("PRAGMA journal_mode")
        mode = cursor.fetchone()[0]
        conn.close()
        assert mode == "wal"

    def test_foreign_keys_enabled(self, tmp_path: Path) -> None:
        db_path = tmp_path / "test.db"
        initialize_database(db_path)

        conn = get_connection(db_path)
        enabled = conn.execute("PRAGMA foreign_keys").fetchone()[0]
        conn.close()
        assert enabled == 1
