"""Chunk build job lifecycle: trigger, background build, and wait."""

import functools
import logging
from concurrent.futures import Executor, Future, ThreadPoolExecutor

from novelsync.config import AppConfig
from novelsync.errors import BookNotFound, BuildFailed, BuildTimeout
from novelsync.ingestion.chunker import assemble_chunks, sort_chapters_for_export
from novelsync.ingestion.detector import detect_chapters
from novelsync.ingestion.parser import SourceTextProvider
from novelsync.jobs.clock import Clock, SystemClock
from novelsync.models.book import Book
from novelsync.models.chunk import ChunkRecord
from novelsync.models.job import JobProgress, JobStatus
from novelsync.storage.repository import Repository

logger = logging.getLogger(__name__)


class ChunkJobController:
    """Makes sure a book has a current set of chunks, building them when needed.

    Builds run on an executor; callers either wait for the result
    (``ensure_ready``) or get a job id back immediately (``start_job``).

    Args:
        repository: Bookkeeping store.
        text_provider: Source of each book's raw text.
        config: Application configuration (chunking and jobs sections).
        executor: Executor for background builds. A thread pool sized by
            ``jobs.max_workers`` is created when omitted.
        clock: Time source for the poll loop.
    """

    def __init__(
        self,
        repository: Repository,
        text_provider: SourceTextProvider,
        config: AppConfig,
        executor: Executor | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._repo = repository
        self._text_provider = text_provider
        self._config = config
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=config.jobs.max_workers, thread_name_prefix="chunk-job"
        )
        self._clock = clock or SystemClock()

    def ensure_ready(
        self,
        book_id: int,
        chunk_size: int | None = None,
        timeout: float | None = None,
    ) -> list[ChunkRecord]:
        """Return the book's current chunks, building them first if necessary.

        Args:
            book_id: Book to prepare.
            chunk_size: Character budget for a new build. Defaults to
                ``chunking.chunk_size``.
            timeout: Seconds to wait for a build. Defaults to
                ``jobs.build_timeout_seconds``.

        Returns:
            Chunks ordered by chunk number.

        Raises:
            BookNotFound: If the book does not exist.
            BuildFailed: If the build job failed.
            BuildTimeout: If the build did not finish in time. The build
                itself keeps running.
        """
        chunks, job_id = self._prepare(book_id, chunk_size)
        if job_id is None:
            return chunks
        if timeout is None:
            timeout = self._config.jobs.build_timeout_seconds
        return self._wait(job_id, timeout)

    def start_job(self, book_id: int, chunk_size: int | None = None) -> int:
        """Trigger a build if one is needed and return the relevant job id.

        On a cache hit the id of the job that produced the current chunks is
        returned and nothing is scheduled.
        """
        chunks, job_id = self._prepare(book_id, chunk_size)
        if job_id is None:
            return chunks[0].chunk_job_id
        return job_id

    def request_rebuild(self, book_id: int) -> None:
        """Flag a book so the next ``ensure_ready`` rebuilds its chunks."""
        self._get_book(book_id)
        self._repo.update_book(book_id, rebuild_chunks=True)
        logger.info("Rebuild requested for book %d", book_id)

    def get_status(self, book_id: int) -> JobProgress | None:
        """Progress of the book's most recent chunk job, if any."""
        job = self._repo.latest_job(book_id)
        if job is None:
            return None
        return JobProgress(
            job_id=job.id,
            book_id=job.book_id,
            status=job.status,
            total_items=job.total_items,
            completed_items=job.completed_items,
            error_message=job.error_message,
        )

    def resume_pending_jobs(self) -> int:
        """Reschedule jobs left queued or processing by a previous run.

        Returns:
            Number of jobs scheduled.
        """
        for job in self._repo.list_jobs_by_status(JobStatus.PROCESSING):
            logger.warning("Requeueing interrupted chunk job %d (book %d)", job.id, job.book_id)
            self._repo.requeue_job(job.id)

        pending = self._repo.list_jobs_by_status(JobStatus.QUEUED)
        for job in pending:
            self._submit(job.id)
        if pending:
            logger.info("Resumed %d pending chunk job(s)", len(pending))
        return len(pending)

    def process_job(self, job_id: int) -> None:
        """Build and persist the chunks for one job.

        Safe to call more than once for the same job: only the caller that
        moves the job out of ``queued`` does any work. Chunks are all written
        before the job is marked ``ready``; any error marks it ``failed``.
        """
        job = self._repo.get_job(job_id)
        if job is None:
            logger.warning("Chunk job %d not found", job_id)
            return
        if not self._repo.begin_processing(job_id):
            logger.debug("Chunk job %d is %s; skipping", job_id, job.status.value)
            return

        logger.info("Chunk job %d started for book %d", job_id, job.book_id)
        try:
            book = self._get_book(job.book_id)
            text = self._text_provider.get_text(book)
            chapters = sort_chapters_for_export(
                detect_chapters(text), self._config.chunking.primary_series
            )
            chunks = assemble_chunks(
                chapters,
                job.chunk_size,
                book_title=book.title,
                metadata={
                    "author": book.author,
                    "category": book.category,
                    "description": book.description,
                },
                include_toc=self._config.chunking.include_toc,
            )

            self._repo.delete_job_chunks(job_id)
            self._repo.update_job(job_id, total_items=len(chunks), completed_items=0)
            for index, chunk in enumerate(chunks, start=1):
                self._repo.add_chunk(job_id, book.id, chunk)
                self._repo.update_job(job_id, completed_items=index)

            self._repo.finish_job(job_id, JobStatus.READY)
            logger.info(
                "Chunk job %d ready: %d chapters in %d chunks",
                job_id,
                len(chapters),
                len(chunks),
            )
        except Exception as exc:
            logger.exception("Chunk job %d failed", job_id)
            self._repo.finish_job(job_id, JobStatus.FAILED, str(exc) or type(exc).__name__)

    def shutdown(self, wait: bool = True) -> None:
        """Stop the internal executor, if this controller created it."""
        if self._owns_executor:
            self._executor.shutdown(wait=wait)

    def _get_book(self, book_id: int) -> Book:
        book = self._repo.get_book(book_id)
        if book is None:
            raise BookNotFound(book_id)
        return book

    def _prepare(
        self, book_id: int, chunk_size: int | None
    ) -> tuple[list[ChunkRecord], int | None]:
        """Return ``(chunks, None)`` on a cache hit, else ``([], job_id)``."""
        book = self._get_book(book_id)
        chunks = self._repo.current_chunks(book_id)

        if chunks and not book.rebuild_chunks:
            logger.debug("Book %d has %d current chunks", book_id, len(chunks))
            return chunks, None

        if book.rebuild_chunks:
            if chunks:
                kept = self._repo.retire_job_chunks(chunks[0].chunk_job_id)
                logger.info(
                    "Retired chunks of job %d for book %d (%d awaiting remote cleanup)",
                    chunks[0].chunk_job_id,
                    book_id,
                    kept,
                )
            self._repo.update_book(book_id, rebuild_chunks=False)

        job = self._repo.latest_job(book_id)
        if job is None or job.status.is_terminal:
            job, created = self._repo.claim_chunk_job(
                book_id, chunk_size or self._config.chunking.chunk_size
            )
            if created:
                logger.info("Created chunk job %d for book %d", job.id, book_id)

        if job.status == JobStatus.QUEUED:
            self._submit(job.id)
        return [], job.id

    def _submit(self, job_id: int) -> None:
        future = self._executor.submit(self.process_job, job_id)
        future.add_done_callback(functools.partial(self._supervise, job_id))

    def _supervise(self, job_id: int, future: Future) -> None:
        """Fail the job if anything escaped ``process_job``."""
        if future.cancelled():
            logger.warning("Chunk job %d was cancelled before it ran", job_id)
            return
        exc = future.exception()
        if exc is None:
            return
        logger.error("Chunk job %d crashed: %s", job_id, exc)
        job = self._repo.get_job(job_id)
        if job is not None and not job.status.is_terminal:
            self._repo.finish_job(job_id, JobStatus.FAILED, str(exc) or type(exc).__name__)

    def _wait(self, job_id: int, timeout: float) -> list[ChunkRecord]:
        deadline = self._clock.monotonic() + timeout
        interval = self._config.jobs.poll_interval_seconds
        while True:
            job = self._repo.get_job(job_id)
            if job is None:
                raise BuildFailed(job_id, "Job record no longer exists")
            if job.status.is_success:
                return self._repo.chunks_for_job(job_id)
            if job.status == JobStatus.FAILED:
                raise BuildFailed(job_id, job.error_message)
            if self._clock.monotonic() >= deadline:
                raise BuildTimeout(job_id, timeout)
            self._clock.sleep(interval)
