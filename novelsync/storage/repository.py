"""Data access layer for books, chunk jobs, chunks and sync jobs.

Every method opens its own connection, so a Repository can be shared
between the request thread and background build workers.
"""

import json
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any

from novelsync.models.book import Book
from novelsync.models.chapter import ChapterSummary
from novelsync.models.chunk import ChunkRecord
from novelsync.models.job import ChunkJob, JobStatus, SyncJob
from novelsync.storage.database import get_connection

_BOOK_FIELDS = frozenset(
    {
        "title",
        "author",
        "category",
        "description",
        "source_path",
        "file_format",
        "sync_enabled",
        "rebuild_chunks",
        "last_synced_at",
        "remote_container_id",
    }
)
_JOB_FIELDS = frozenset(
    {"status", "total_items", "completed_items", "error_message", "started_at", "completed_at"}
)
_SYNC_JOB_FIELDS = frozenset(
    {
        "status",
        "total_items",
        "completed_items",
        "synced_books",
        "synced_chunks",
        "error_message",
        "errors",
        "started_at",
        "completed_at",
    }
)
_TERMINAL = tuple(s.value for s in JobStatus if s.is_terminal)
_SUCCESS = tuple(s.value for s in JobStatus if s.is_success)
_SUCCESS_PLACEHOLDERS = ", ".join("?" for _ in _SUCCESS)


def _to_db(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, JobStatus):
        return value.value
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (list, dict)):
        return json.dumps(value, ensure_ascii=False)
    return value


def _parse_dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _row_to_book(row: sqlite3.Row) -> Book:
    return Book(
        id=row["id"],
        title=row["title"],
        author=row["author"] or "",
        category=row["category"] or "",
        description=row["description"] or "",
        source_path=row["source_path"] or "",
        file_format=row["file_format"] or "txt",
        sync_enabled=bool(row["sync_enabled"]),
        rebuild_chunks=bool(row["rebuild_chunks"]),
        last_synced_at=_parse_dt(row["last_synced_at"]),
        remote_container_id=row["remote_container_id"],
        created_at=_parse_dt(row["created_at"]) or datetime.now(),
    )


def _row_to_job(row: sqlite3.Row) -> ChunkJob:
    return ChunkJob(
        id=row["id"],
        book_id=row["book_id"],
        status=JobStatus(row["status"]),
        chunk_size=row["chunk_size"],
        total_items=row["total_items"] or 0,
        completed_items=row["completed_items"] or 0,
        error_message=row["error_message"],
        created_at=_parse_dt(row["created_at"]),
        started_at=_parse_dt(row["started_at"]),
        completed_at=_parse_dt(row["completed_at"]),
    )


def _row_to_chunk(row: sqlite3.Row) -> ChunkRecord:
    chapters = json.loads(row["chapters_data"]) if row["chapters_data"] else []
    return ChunkRecord(
        id=row["id"],
        chunk_job_id=row["chunk_job_id"],
        book_id=row["book_id"],
        chunk_number=row["chunk_number"],
        total_chunks=row["total_chunks"],
        content=row["content"],
        line_start=row["line_start"],
        line_end=row["line_end"],
        first_chapter=row["first_chapter"],
        last_chapter=row["last_chapter"],
        chapter_count=row["chapter_count"] or 0,
        chapters_data=[ChapterSummary(**c) for c in chapters],
        remote_note_id=row["remote_note_id"],
        superseded=bool(row["superseded"]),
        created_at=_parse_dt(row["created_at"]),
    )


def _row_to_sync_job(row: sqlite3.Row) -> SyncJob:
    return SyncJob(
        id=row["id"],
        status=JobStatus(row["status"]),
        book_ids=json.loads(row["book_ids"]) if row["book_ids"] else [],
        total_items=row["total_items"] or 0,
        completed_items=row["completed_items"] or 0,
        synced_books=row["synced_books"] or 0,
        synced_chunks=row["synced_chunks"] or 0,
        error_message=row["error_message"],
        errors=json.loads(row["errors"]) if row["errors"] else [],
        created_at=_parse_dt(row["created_at"]),
        started_at=_parse_dt(row["started_at"]),
        completed_at=_parse_dt(row["completed_at"]),
    )


class Repository:
    """Typed access to the bookkeeping tables.

    Args:
        db_path: Path to an initialized SQLite database
            (see ``novelsync.storage.database.initialize_database``).
    """

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = db_path

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = get_connection(self._db_path)
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _update(self, table: str, allowed: frozenset[str], row_id: int, fields: dict) -> int:
        unknown = set(fields) - allowed
        if unknown:
            raise ValueError(f"Unknown {table} fields: {sorted(unknown)}")
        if not fields:
            return 0
        assignments = ", ".join(f"{name} = ?" for name in fields)
        values = [_to_db(v) for v in fields.values()]
        with self._connect() as conn:
            cur = conn.execute(
                f"UPDATE {table} SET {assignments} WHERE id = ?", (*values, row_id)
            )
            return cur.rowcount

    # ------------------------------------------------------------------
    # Books
    # ------------------------------------------------------------------

    def add_book(self, book: Book) -> int:
        """Insert a book and return its id."""
        with self._connect() as conn:
            cur = conn.execute(
                """
                INSERT INTO books (
                    title, author, category, description, source_path, file_format,
                    sync_enabled, rebuild_chunks, last_synced_at, remote_container_id,
                    created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    book.title,
                    book.author,
                    book.category,
                    book.description,
                    book.source_path,
                    book.file_format,
                    int(book.sync_enabled),
                    int(book.rebuild_chunks),
                    _to_db(book.last_synced_at),
                    book.remote_container_id,
                    _to_db(book.created_at),
                ),
            )
            return int(cur.lastrowid)

    def get_book(self, book_id: int) -> Book | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM books WHERE id = ?", (book_id,)).fetchone()
        return _row_to_book(row) if row else None

    def list_books(self, sync_enabled_only: bool = False) -> list[Book]:
        sql = "SELECT * FROM books"
        if sync_enabled_only:
            sql += " WHERE sync_enabled = 1"
        with self._connect() as conn:
            rows = conn.execute(sql + " ORDER BY id").fetchall()
        return [_row_to_book(r) for r in rows]

    def update_book(self, book_id: int, **fields: Any) -> int:
        """Update selected book columns. Returns the number of rows changed."""
        return self._update("books", _BOOK_FIELDS, book_id, fields)

    # ------------------------------------------------------------------
    # Chunk jobs
    # ------------------------------------------------------------------

    def claim_chunk_job(self, book_id: int, chunk_size: int) -> tuple[ChunkJob, bool]:
        """Create a queued job unless the book already has an active one.

        The check and the insert run in a single ``BEGIN IMMEDIATE``
        transaction against the ``active_chunk_jobs`` marker, so concurrent
        callers for the same book end up sharing one job.

        Args:
            book_id: Book to build chunks for.
            chunk_size: Character budget per chunk for a new job.

        Returns:
            ``(job, created)``; ``created`` is False when an existing
            queued or processing job was returned instead.
        """
        conn = get_connection(self._db_path)
        try:
            conn.execute("BEGIN IMMEDIATE")
            row = conn.execute(
                """
                SELECT j.* FROM active_chunk_jobs a
                JOIN chunk_jobs j ON j.id = a.job_id
                WHERE a.book_id = ?
                """,
                (book_id,),
            ).fetchone()
            if row and row["status"] not in _TERMINAL:
                conn.rollback()
                return _row_to_job(row), False

            job = ChunkJob(book_id=book_id, chunk_size=chunk_size)
            cur = conn.execute(
                """
                INSERT INTO chunk_jobs (book_id, status, chunk_size, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (book_id, job.status.value, chunk_size, _to_db(job.created_at)),
            )
            job.id = int(cur.lastrowid)
            conn.execute(
                "INSERT OR REPLACE INTO active_chunk_jobs (book_id, job_id) VALUES (?, ?)",
                (book_id, job.id),
            )
            conn.commit()
            return job, True
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def get_job(self, job_id: int) -> ChunkJob | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM chunk_jobs WHERE id = ?", (job_id,)).fetchone()
        return _row_to_job(row) if row else None

    def latest_job(self, book_id: int) -> ChunkJob | None:
        """Return the most recently created job for a book."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM chunk_jobs WHERE book_id = ? ORDER BY id DESC LIMIT 1",
                (book_id,),
            ).fetchone()
        return _row_to_job(row) if row else None

    def list_jobs_by_status(self, *statuses: JobStatus) -> list[ChunkJob]:
        placeholders = ", ".join("?" for _ in statuses)
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT * FROM chunk_jobs WHERE status IN ({placeholders}) ORDER BY id",
                [s.value for s in statuses],
            ).fetchall()
        return [_row_to_job(r) for r in rows]

    def begin_processing(self, job_id: int) -> bool:
        """Move a job from queued to processing.

        Returns:
            True if this caller won the transition; False if the job was not
            queued (already running, finished, or missing).
        """
        with self._connect() as conn:
            cur = conn.execute(
                """
                UPDATE chunk_jobs SET status = ?, started_at = ?
                WHERE id = ? AND status = ?
                """,
                (
                    JobStatus.PROCESSING.value,
                    _to_db(datetime.now()),
                    job_id,
                    JobStatus.QUEUED.value,
                ),
            )
            return cur.rowcount == 1

    def update_job(self, job_id: int, **fields: Any) -> int:
        return self._update("chunk_jobs", _JOB_FIELDS, job_id, fields)

    def finish_job(
        self, job_id: int, status: JobStatus, error_message: str | None = None
    ) -> None:
        """Move a job to a terminal state and release its active marker."""
        if not status.is_terminal:
            raise ValueError(f"{status.value} is not a terminal status")
        with self._connect() as conn:
            conn.execute(
                """
                UPDATE chunk_jobs SET status = ?, error_message = ?, completed_at = ?
                WHERE id = ?
                """,
                (status.value, error_message, _to_db(datetime.now()), job_id),
            )
            conn.execute("DELETE FROM active_chunk_jobs WHERE job_id = ?", (job_id,))

    def requeue_job(self, job_id: int) -> None:
        """Put an interrupted processing job back in the queue."""
        with self._connect() as conn:
            conn.execute(
                "UPDATE chunk_jobs SET status = ?, started_at = NULL WHERE id = ? AND status = ?",
                (JobStatus.QUEUED.value, job_id, JobStatus.PROCESSING.value),
            )

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    def add_chunk(self, job_id: int, book_id: int, chunk: ChunkRecord) -> int:
        """Persist one chunk for a job and return its id."""
        with self._connect() as conn:
            cur = conn.execute(
                """
                INSERT INTO chunks (
                    chunk_job_id, book_id, chunk_number, total_chunks, content,
                    line_start, line_end, first_chapter, last_chapter,
                    chapter_count, chapters_data, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    job_id,
                    book_id,
                    chunk.chunk_number,
                    chunk.total_chunks,
                    chunk.content,
                    chunk.line_start,
                    chunk.line_end,
                    chunk.first_chapter,
                    chunk.last_chapter,
                    chunk.chapter_count,
                    json.dumps(
                        [c.model_dump() for c in chunk.chapters_data], ensure_ascii=False
                    ),
                    _to_db(datetime.now()),
                ),
            )
            return int(cur.lastrowid)

    def chunks_for_job(self, job_id: int) -> list[ChunkRecord]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM chunks WHERE chunk_job_id = ? AND superseded = 0
                ORDER BY chunk_number
                """,
                (job_id,),
            ).fetchall()
        return [_row_to_chunk(r) for r in rows]

    def current_chunks(self, book_id: int) -> list[ChunkRecord]:
        """Return the chunks of the book's most recent successful job.

        Chunks of jobs that are still queued or processing are never
        returned, so a partially written set is not observable.
        """
        with self._connect() as conn:
            row = conn.execute(
                f"""
                SELECT j.id FROM chunk_jobs j
                WHERE j.book_id = ? AND j.status IN ({_SUCCESS_PLACEHOLDERS})
                  AND EXISTS (
                      SELECT 1 FROM chunks c WHERE c.chunk_job_id = j.id AND c.superseded = 0
                  )
                ORDER BY j.id DESC LIMIT 1
                """,
                (book_id, *_SUCCESS),
            ).fetchone()
        if row is None:
            return []
        return self.chunks_for_job(row["id"])

    def all_chunks_for_book(self, book_id: int) -> list[ChunkRecord]:
        """Return every chunk row on record for a book, superseded ones included."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM chunks WHERE book_id = ? ORDER BY chunk_job_id, chunk_number",
                (book_id,),
            ).fetchall()
        return [_row_to_chunk(r) for r in rows]

    def delete_job_chunks(self, job_id: int) -> int:
        """Delete the chunks of a job that have no remote note attached."""
        with self._connect() as conn:
            cur = conn.execute(
                "DELETE FROM chunks WHERE chunk_job_id = ? AND remote_note_id IS NULL",
                (job_id,),
            )
            return cur.rowcount

    def retire_job_chunks(self, job_id: int) -> int:
        """Supersede a job's chunks ahead of a rebuild.

        Rows without a remote note are deleted; rows with one are kept and
        flagged ``superseded`` so the reconciler can retire their notes.

        Returns:
            Number of rows kept as superseded.
        """
        with self._connect() as conn:
            conn.execute(
                "DELETE FROM chunks WHERE chunk_job_id = ? AND remote_note_id IS NULL",
                (job_id,),
            )
            cur = conn.execute(
                "UPDATE chunks SET superseded = 1 WHERE chunk_job_id = ?", (job_id,)
            )
            return cur.rowcount

    def set_remote_note_id(self, chunk_id: int, note_id: str | None) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE chunks SET remote_note_id = ? WHERE id = ?", (note_id, chunk_id)
            )

    def purge_stale_chunks(self, book_id: int, keep_job_id: int) -> int:
        """Delete rows outside the current job that no longer hold a remote note."""
        with self._connect() as conn:
            cur = conn.execute(
                """
                DELETE FROM chunks
                WHERE book_id = ? AND chunk_job_id != ? AND remote_note_id IS NULL
                """,
                (book_id, keep_job_id),
            )
            return cur.rowcount

    # ------------------------------------------------------------------
    # Sync jobs
    # ------------------------------------------------------------------

    def create_sync_job(self, book_ids: list[int]) -> int:
        job = SyncJob(book_ids=book_ids, total_items=len(book_ids))
        with self._connect() as conn:
            cur = conn.execute(
                """
                INSERT INTO sync_jobs (status, book_ids, total_items, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (job.status.value, _to_db(book_ids), job.total_items, _to_db(job.created_at)),
            )
            return int(cur.lastrowid)

    def get_sync_job(self, job_id: int) -> SyncJob | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM sync_jobs WHERE id = ?", (job_id,)).fetchone()
        return _row_to_sync_job(row) if row else None

    def update_sync_job(self, job_id: int, **fields: Any) -> int:
        return self._update("sync_jobs", _SYNC_JOB_FIELDS, job_id, fields)
