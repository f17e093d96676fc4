"""Batch synchronization of books to the remote note store."""

import logging
from datetime import datetime

from novelsync.errors import NovelSyncError, remediation_message
from novelsync.jobs.controller import ChunkJobController
from novelsync.models.job import JobStatus, SyncJob
from novelsync.storage.repository import Repository
from novelsync.sync.reconciler import FATAL_REMOTE_ERRORS, SyncReconciler

logger = logging.getLogger(__name__)


class SyncService:
    """Runs sync jobs: make chunks ready, then reconcile, for each book.

    Args:
        repository: Bookkeeping store.
        controller: Chunk job controller used to make chunks ready.
        reconciler: Remote reconciler.
        api_url: Remote API URL, used in remediation messages.
    """

    def __init__(
        self,
        repository: Repository,
        controller: ChunkJobController,
        reconciler: SyncReconciler,
        api_url: str = "",
    ) -> None:
        self._repo = repository
        self._controller = controller
        self._reconciler = reconciler
        self._api_url = api_url

    def sync_book(self, book_id: int) -> int:
        """Ensure a book's chunks are built and reconcile them.

        Returns:
            Number of chunks created or updated remotely.
        """
        self._controller.ensure_ready(book_id)
        return self._reconciler.reconcile(book_id)

    def create_job(self, book_ids: list[int] | None = None) -> int:
        """Queue a sync job for the given books, or every sync-enabled book."""
        if book_ids is None:
            book_ids = [b.id for b in self._repo.list_books(sync_enabled_only=True)]
        job_id = self._repo.create_sync_job(book_ids)
        logger.info("Created sync job %d for %d book(s)", job_id, len(book_ids))
        return job_id

    def run_job(self, job_id: int) -> SyncJob:
        """Run a queued sync job to completion.

        Failures of single books are collected in ``errors`` and do not stop
        the job. An authentication or connection failure fails the whole job
        with a remediation hint in ``error_message``.

        Returns:
            The final state of the job.

        Raises:
            ValueError: If the job does not exist.
        """
        job = self._repo.get_sync_job(job_id)
        if job is None:
            raise ValueError(f"Sync job not found: {job_id}")

        self._repo.update_sync_job(
            job_id, status=JobStatus.PROCESSING, started_at=datetime.now()
        )
        synced_books = 0
        synced_chunks = 0
        errors: list[dict] = []

        try:
            for index, book_id in enumerate(job.book_ids, start=1):
                try:
                    synced_chunks += self.sync_book(book_id)
                    synced_books += 1
                except FATAL_REMOTE_ERRORS:
                    raise
                except NovelSyncError as exc:
                    logger.error("Sync job %d: book %d failed: %s", job_id, book_id, exc)
                    errors.append({"book_id": book_id, "error": str(exc)})
                self._repo.update_sync_job(
                    job_id,
                    completed_items=index,
                    synced_books=synced_books,
                    synced_chunks=synced_chunks,
                    errors=errors,
                )
        except FATAL_REMOTE_ERRORS as exc:
            logger.error("Sync job %d aborted: %s", job_id, exc)
            self._finish(job_id, JobStatus.FAILED, remediation_message(exc, self._api_url), errors)
            return self._repo.get_sync_job(job_id)
        except Exception as exc:
            logger.exception("Sync job %d crashed", job_id)
            self._finish(job_id, JobStatus.FAILED, str(exc), errors)
            raise

        message = f"{len(errors)} book(s) failed to sync" if errors else None
        self._finish(job_id, JobStatus.COMPLETED, message, errors)
        logger.info(
            "Sync job %d completed: %d book(s), %d chunk(s), %d error(s)",
            job_id,
            synced_books,
            synced_chunks,
            len(errors),
        )
        return self._repo.get_sync_job(job_id)

    def _finish(
        self, job_id: int, status: JobStatus, message: str | None, errors: list[dict]
    ) -> None:
        self._repo.update_sync_job(
            job_id,
            status=status,
            error_message=message,
            errors=errors,
            completed_at=datetime.now(),
        )
