"""SQLite database initialization and connection management."""

import sqlite3
from pathlib import Path


def get_connection(db_path: str | Path) -> sqlite3.Connection:
    """Create a connection to the SQLite database.

    Args:
        db_path: Path to the SQLite database file.

    Returns:
        A sqlite3 Connection with row_factory set to Row.
    """
    conn = sqlite3.connect(str(db_path), timeout=30)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    return conn


def initialize_database(db_path: str | Path) -> None:
    """Create the database schema if it doesn't exist.

    Args:
        db_path: Path to the SQLite database file.
    """
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    conn = get_connection(db_path)
    try:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS books (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                title TEXT NOT NULL,
                author TEXT DEFAULT '',
                category TEXT DEFAULT '',
                description TEXT DEFAULT '',
                source_path TEXT DEFAULT '',
                file_format TEXT DEFAULT 'txt',
                sync_enabled INTEGER DEFAULT 1,
                rebuild_chunks INTEGER DEFAULT 0,
                last_synced_at TIMESTAMP,
                remote_container_id TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );

            CREATE TABLE IF NOT EXISTS chunk_jobs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                book_id INTEGER NOT NULL REFERENCES books(id) ON DELETE CASCADE,
                status TEXT NOT NULL DEFAULT 'queued',
                chunk_size INTEGER NOT NULL,
                total_items INTEGER DEFAULT 0,
                completed_items INTEGER DEFAULT 0,
                error_message TEXT,
                created_at TIMESTAMP NOT NULL,
                started_at TIMESTAMP,
                completed_at TIMESTAMP
            );

            CREATE INDEX IF NOT EXISTS idx_chunk_jobs_book
                ON chunk_jobs(book_id, id);

            CREATE TABLE IF NOT EXISTS active_chunk_jobs (
                book_id INTEGER PRIMARY KEY REFERENCES books(id) ON DELETE CASCADE,
                job_id INTEGER NOT NULL REFERENCES chunk_jobs(id) ON DELETE CASCADE
            );

            CREATE TABLE IF NOT EXISTS chunks (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                chunk_job_id INTEGER NOT NULL REFERENCES chunk_jobs(id) ON DELETE CASCADE,
                book_id INTEGER NOT NULL REFERENCES books(id) ON DELETE CASCADE,
                chunk_number INTEGER NOT NULL,
                total_chunks INTEGER NOT NULL,
                content TEXT NOT NULL,
                line_start INTEGER NOT NULL,
                line_end INTEGER NOT NULL,
                first_chapter INTEGER,
                last_chapter INTEGER,
                chapter_count INTEGER DEFAULT 0,
                chapters_data TEXT,
                remote_note_id TEXT,
                superseded INTEGER DEFAULT 0,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                UNIQUE (chunk_job_id, chunk_number)
            );

            CREATE INDEX IF NOT EXISTS idx_chunks_book ON chunks(book_id);

            CREATE TABLE IF NOT EXISTS sync_jobs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                status TEXT NOT NULL DEFAULT 'queued',
                book_ids TEXT,
                total_items INTEGER DEFAULT 0,
                completed_items INTEGER DEFAULT 0,
                synced_books INTEGER DEFAULT 0,
                synced_chunks INTEGER DEFAULT 0,
                error_message TEXT,
                errors TEXT,
                created_at TIMESTAMP NOT NULL,
                started_at TIMESTAMP,
                completed_at TIMESTAMP
            );
            """
        )
        conn.commit()
    finally:
        conn.close()
