"""Tests for the SQLite repository."""

from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime

import pytest

from novelsync.models.book import Book
from novelsync.models.chapter import ChapterSummary
from novelsync.models.chunk import ChunkRecord
from novelsync.models.job import JobStatus
from novelsync.storage.repository import Repository


def _chunk(number: int, total: int = 1) -> ChunkRecord:
    return ChunkRecord(
        chunk_number=number,
        total_chunks=total,
        content=f"第{number}章\n內容",
        line_start=number * 2 - 1,
        line_end=number * 2,
        first_chapter=number,
        last_chapter=number,
        chapter_count=1,
        chapters_data=[
            ChapterSummary(
                chapter_number=number,
                chapter_title=f"第{number}章",
                line_start=number * 2 - 1,
                line_end=number * 2,
            )
        ],
    )


def _ready_job(repo: Repository, book_id: int, count: int) -> int:
    job, _ = repo.claim_chunk_job(book_id, 1000)
    for number in range(1, count + 1):
        repo.add_chunk(job.id, book_id, _chunk(number, count))
    repo.finish_job(job.id, JobStatus.READY)
    return job.id


class TestBooks:
    def test_add_and_get(self, repo: Repository) -> None:
        book_id = repo.add_book(Book(title="天龍八部", author="金庸", category="武俠"))
        book = repo.get_book(book_id)

        assert book is not None
        assert book.id == book_id
        assert book.title == "天龍八部"
        assert book.category == "武俠"
        assert book.sync_enabled is True

    def test_get_missing(self, repo: Repository) -> None:
        assert repo.get_book(999) is None

    def test_update_fields(self, repo: Repository, add_book: Callable[..., Book]) -> None:
        book = add_book()
        synced_at = datetime(2024, 5, 1, 12, 30)
        changed = repo.update_book(
            book.id, rebuild_chunks=True, last_synced_at=synced_at, remote_container_id="f1"
        )

        stored = repo.get_book(book.id)
        assert changed == 1
        assert stored.rebuild_chunks is True
        assert stored.last_synced_at == synced_at
        assert stored.remote_container_id == "f1"

    def test_update_rejects_unknown_field(
        self, repo: Repository, add_book: Callable[..., Book]
    ) -> None:
        book = add_book()
        with pytest.raises(ValueError, match="Unknown books fields"):
            repo.update_book(book.id, id=5)

    def test_list_sync_enabled(self, repo: Repository, add_book: Callable[..., Book]) -> None:
        add_book("甲")
        add_book("乙", sync_enabled=False)

        assert [b.title for b in repo.list_books()] == ["甲", "乙"]
        assert [b.title for b in repo.list_books(sync_enabled_only=True)] == ["甲"]


class TestChunkJobs:
    def test_claim_creates_queued_job(
        self, repo: Repository, add_book: Callable[..., Book]
    ) -> None:
        book = add_book()
        job, created = repo.claim_chunk_job(book.id, 500)

        assert created is True
        assert job.status is JobStatus.QUEUED
        assert repo.get_job(job.id).chunk_size == 500

    def test_claim_returns_active_job(
        self, repo: Repository, add_book: Callable[..., Book]
    ) -> None:
        book = add_book()
        first, _ = repo.claim_chunk_job(book.id, 500)
        second, created = repo.claim_chunk_job(book.id, 500)

        assert created is False
        assert second.id == first.id

    def test_claim_after_terminal_creates_new_job(
        self, repo: Repository, add_book: Callable[..., Book]
    ) -> None:
        book = add_book()
        first, _ = repo.claim_chunk_job(book.id, 500)
        repo.finish_job(first.id, JobStatus.FAILED, "boom")
        second, created = repo.claim_chunk_job(book.id, 500)

        assert created is True
        assert second.id != first.id

    def test_concurrent_claims_share_one_job(
        self, repo: Repository, add_book: Callable[..., Book]
    ) -> None:
        book = add_book()
        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda _: repo.claim_chunk_job(book.id, 500), range(16)))

        assert len({job.id for job, _ in results}) == 1
        assert sum(created for _, created in results) == 1

    def test_begin_processing_only_once(
        self, repo: Repository, add_book: Callable[..., Book]
    ) -> None:
        book = add_book()
        job, _ = repo.claim_chunk_job(book.id, 500)

        assert repo.begin_processing(job.id) is True
        assert repo.begin_processing(job.id) is False
        stored = repo.get_job(job.id)
        assert stored.status is JobStatus.PROCESSING
        assert stored.started_at is not None

    def test_finish_job(self, repo: Repository, add_book: Callable[..., Book]) -> None:
        book = add_book()
        job, _ = repo.claim_chunk_job(book.id, 500)
        repo.finish_job(job.id, JobStatus.FAILED, "壞了")

        stored = repo.get_job(job.id)
        assert stored.status is JobStatus.FAILED
        assert stored.error_message == "壞了"
        assert stored.completed_at is not None

    def test_finish_job_requires_terminal_status(
        self, repo: Repository, add_book: Callable[..., Book]
    ) -> None:
        book = add_book()
        job, _ = repo.claim_chunk_job(book.id, 500)
        with pytest.raises(ValueError, match="not a terminal status"):
            repo.finish_job(job.id, JobStatus.PROCESSING)

    def test_latest_job(self, repo: Repository, add_book: Callable[..., Book]) -> None:
        book = add_book()
        assert repo.latest_job(book.id) is None
        first, _ = repo.claim_chunk_job(book.id, 500)
        repo.finish_job(first.id, JobStatus.READY)
        second, _ = repo.claim_chunk_job(book.id, 500)

        assert repo.latest_job(book.id).id == second.id

    def test_requeue_and_list_by_status(
        self, repo: Repository, add_book: Callable[..., Book]
    ) -> None:
        book = add_book()
        job, _ = repo.claim_chunk_job(book.id, 500)
        repo.begin_processing(job.id)
        assert [j.id for j in repo.list_jobs_by_status(JobStatus.PROCESSING)] == [job.id]

        repo.requeue_job(job.id)
        assert repo.get_job(job.id).status is JobStatus.QUEUED
        assert repo.list_jobs_by_status(JobStatus.PROCESSING) == []


class TestChunks:
    def test_chunks_round_trip(self, repo: Repository, add_book: Callable[..., Book]) -> None:
        book = add_book()
        job_id = _ready_job(repo, book.id, 2)

        chunks = repo.chunks_for_job(job_id)
        assert [c.chunk_number for c in chunks] == [1, 2]
        assert chunks[1].chapters_data[0].chapter_title == "第2章"
        assert chunks[0].book_id == book.id
        assert chunks[0].total_chunks == 2

    def test_current_chunks_ignore_unfinished_jobs(
        self, repo: Repository, add_book: Callable[..., Book]
    ) -> None:
        book = add_book()
        job, _ = repo.claim_chunk_job(book.id, 500)
        repo.add_chunk(job.id, book.id, _chunk(1))

        assert repo.current_chunks(book.id) == []
        repo.finish_job(job.id, JobStatus.READY)
        assert len(repo.current_chunks(book.id)) == 1

    def test_current_chunks_use_latest_successful_job(
        self, repo: Repository, add_book: Callable[..., Book]
    ) -> None:
        book = add_book()
        _ready_job(repo, book.id, 3)
        newer = _ready_job(repo, book.id, 2)

        current = repo.current_chunks(book.id)
        assert {c.chunk_job_id for c in current} == {newer}
        assert len(current) == 2

    def test_retire_keeps_only_rows_with_remote_notes(
        self, repo: Repository, add_book: Callable[..., Book]
    ) -> None:
        book = add_book()
        job_id = _ready_job(repo, book.id, 3)
        chunks = repo.chunks_for_job(job_id)
        repo.set_remote_note_id(chunks[0].id, "note-1")

        kept = repo.retire_job_chunks(job_id)

        assert kept == 1
        assert repo.current_chunks(book.id) == []
        remaining = repo.all_chunks_for_book(book.id)
        assert [(c.chunk_number, c.superseded, c.remote_note_id) for c in remaining] == [
            (1, True, "note-1")
        ]

    def test_purge_stale_chunks(self, repo: Repository, add_book: Callable[..., Book]) -> None:
        book = add_book()
        old = _ready_job(repo, book.id, 2)
        old_chunks = repo.chunks_for_job(old)
        repo.set_remote_note_id(old_chunks[0].id, "note-1")
        repo.retire_job_chunks(old)
        new = _ready_job(repo, book.id, 1)

        assert repo.purge_stale_chunks(book.id, new) == 0
        repo.set_remote_note_id(old_chunks[0].id, None)
        assert repo.purge_stale_chunks(book.id, new) == 1
        assert {c.chunk_job_id for c in repo.all_chunks_for_book(book.id)} == {new}

    def test_delete_job_chunks(self, repo: Repository, add_book: Callable[..., Book]) -> None:
        book = add_book()
        job, _ = repo.claim_chunk_job(book.id, 500)
        repo.add_chunk(job.id, book.id, _chunk(1))
        repo.add_chunk(job.id, book.id, _chunk(2))

        assert repo.delete_job_chunks(job.id) == 2
        assert repo.chunks_for_job(job.id) == []


class TestSyncJobs:
    def test_create_and_update(self, repo: Repository) -> None:
        job_id = repo.create_sync_job([1, 2, 3])
        job = repo.get_sync_job(job_id)
        assert job.status is JobStatus.QUEUED
        assert job.book_ids == [1, 2, 3]
        assert job.total_items == 3

        repo.update_sync_job(
            job_id,
            status=JobStatus.COMPLETED,
            synced_books=2,
            errors=[{"book_id": 3, "error": "壞了"}],
        )
        job = repo.get_sync_job(job_id)
        assert job.status is JobStatus.COMPLETED
        assert job.synced_books == 2
        assert job.errors == [{"book_id": 3, "error": "壞了"}]

    def test_get_missing(self, repo: Repository) -> None:
        assert repo.get_sync_job(42) is None
