"""Reconcile a book's local chunks with notes in the remote note store."""

import logging
from datetime import datetime

from novelsync.config import AppConfig
from novelsync.errors import (
    BookNotFound,
    RemoteAuthError,
    RemoteError,
    RemoteNotFound,
    RemoteUnavailable,
)
from novelsync.models.book import Book
from novelsync.models.chunk import ChunkRecord
from novelsync.models.job import ChunkJob
from novelsync.remote.base import NoteStore
from novelsync.storage.repository import Repository
from novelsync.sync.tags import note_tags

logger = logging.getLogger(__name__)

# Errors that make every further remote call pointless.
FATAL_REMOTE_ERRORS = (RemoteAuthError, RemoteUnavailable)


def chunk_note_title(book_title: str, chunk: ChunkRecord) -> str:
    """Note title for a chunk: "書名(12-15)", "書名(12)" or "書名(第3部分)"."""
    first = chunk.first_chapter
    last = chunk.last_chapter
    if first is None and chunk.chapters_data:
        first = chunk.chapters_data[0].chapter_number
    if last is None and chunk.chapters_data:
        last = chunk.chapters_data[-1].chapter_number

    if first and last:
        label = str(first) if first == last else f"{first}-{last}"
    else:
        label = f"第{chunk.chunk_number}部分"
    return f"{book_title}({label})"


class SyncReconciler:
    """Creates, updates and retires remote notes so they match local chunks.

    Remote notes are never deleted: notes of chunks replaced by a rebuild are
    moved to the recycle container.

    Args:
        repository: Bookkeeping store; the only writer of ``remote_note_id``
            is this class.
        note_store: Remote note store client.
        config: Application configuration (remote section).
    """

    def __init__(self, repository: Repository, note_store: NoteStore, config: AppConfig) -> None:
        self._repo = repository
        self._store = note_store
        self._config = config

    def reconcile(self, book_id: int) -> int:
        """Sync the book's current chunks.

        Returns:
            Number of chunks created or updated remotely.

        Raises:
            BookNotFound: If the book does not exist.
            RemoteAuthError: If the remote store rejects the token.
            RemoteUnavailable: If the remote store cannot be reached.
        """
        book = self._repo.get_book(book_id)
        if book is None:
            raise BookNotFound(book_id)

        chunks = self._repo.current_chunks(book_id)
        if not chunks:
            logger.info("Book %d has no ready chunks; nothing to sync", book_id)
            return 0
        job = self._repo.get_job(chunks[0].chunk_job_id)
        return self.reconcile_chunks(book, job, chunks)

    def reconcile_chunks(
        self, book: Book, job: ChunkJob | None, chunks: list[ChunkRecord]
    ) -> int:
        """Sync ``chunks``, all produced by the successful ``job``.

        Skips all remote work if the job finished before the book's last
        successful sync.
        """
        if job is None or job.completed_at is None:
            logger.info("Book %d: chunk job has not completed; skipping sync", book.id)
            return 0
        if book.last_synced_at is not None and book.last_synced_at >= job.completed_at:
            logger.debug(
                "Book %d unchanged since last sync at %s", book.id, book.last_synced_at
            )
            return 0

        remote = self._config.remote
        author = book.author or remote.unknown_author
        container_id = self._store.ensure_container_path(
            [remote.root_folder, author, book.title]
        )
        tags = note_tags(author, book.title, remote.unknown_author)

        current_ids = {chunk.id for chunk in chunks}
        orphans = [
            c
            for c in self._repo.all_chunks_for_book(book.id)
            if c.id not in current_ids and c.remote_note_id
        ]
        # A replaced chunk's note is reused by the new chunk at the same position.
        adoptable = {c.chunk_number: c for c in orphans}

        synced = 0
        failures = 0
        for chunk in chunks:
            try:
                self._upsert(book, chunk, container_id, tags, adoptable)
                synced += 1
            except FATAL_REMOTE_ERRORS:
                raise
            except RemoteError as exc:
                failures += 1
                logger.error(
                    "Book %d: failed to sync chunk %d: %s", book.id, chunk.chunk_number, exc
                )

        failures += self._retire(book, [c for c in orphans if c.remote_note_id])
        self._repo.purge_stale_chunks(book.id, job.id)

        if failures:
            self._repo.update_book(book.id, remote_container_id=container_id)
            logger.warning(
                "Book %d partially synced: %d chunks, %d failures", book.id, synced, failures
            )
        else:
            self._repo.update_book(
                book.id, remote_container_id=container_id, last_synced_at=datetime.now()
            )
            logger.info("Book %d synced: %d chunks", book.id, synced)
        return synced

    def _upsert(
        self,
        book: Book,
        chunk: ChunkRecord,
        container_id: str,
        tags: list[str],
        adoptable: dict[int, ChunkRecord],
    ) -> None:
        title = chunk_note_title(book.title, chunk)
        note_id = chunk.remote_note_id
        donor = None
        if note_id is None and chunk.chunk_number in adoptable:
            donor = adoptable.pop(chunk.chunk_number)
            note_id = donor.remote_note_id

        if note_id is not None:
            try:
                self._store.update_note(
                    note_id, title=title, body=chunk.content, container_id=container_id
                )
            except RemoteNotFound:
                logger.warning(
                    "Book %d: note %s for chunk %d is gone; recreating",
                    book.id,
                    note_id,
                    chunk.chunk_number,
                )
                note_id = None

        if note_id is None:
            note_id = self._store.create_note(title, chunk.content, container_id, tags)

        if note_id != chunk.remote_note_id:
            self._repo.set_remote_note_id(chunk.id, note_id)
            chunk.remote_note_id = note_id
        if donor is not None:
            self._repo.set_remote_note_id(donor.id, None)
            donor.remote_note_id = None

    def _retire(self, book: Book, orphans: list[ChunkRecord]) -> int:
        """Move notes of replaced chunks to the recycle container.

        Returns:
            Number of notes that could not be moved.
        """
        if not orphans:
            return 0

        recycle_id = self._store.ensure_recycle_container()
        failures = 0
        for orphan in orphans:
            try:
                self._store.move_note(orphan.remote_note_id, recycle_id)
                logger.info(
                    "Book %d: retired note %s of replaced chunk %d",
                    book.id,
                    orphan.remote_note_id,
                    orphan.chunk_number,
                )
            except RemoteNotFound:
                logger.info("Book %d: note %s already gone", book.id, orphan.remote_note_id)
            except FATAL_REMOTE_ERRORS:
                raise
            except RemoteError as exc:
                failures += 1
                logger.error(
                    "Book %d: failed to retire note %s: %s", book.id, orphan.remote_note_id, exc
                )
                continue
            self._repo.set_remote_note_id(orphan.id, None)
            orphan.remote_note_id = None
        return failures
