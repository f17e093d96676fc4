"""Job data models: chunk builds and batch remote syncs."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class JobStatus(str, Enum):
    """Lifecycle states shared by chunk and sync jobs."""

    QUEUED = "queued"
    PROCESSING = "processing"
    READY = "ready"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.READY, JobStatus.COMPLETED, JobStatus.FAILED)

    @property
    def is_success(self) -> bool:
        return self in (JobStatus.READY, JobStatus.COMPLETED)


class ChunkJob(BaseModel):
    """The asynchronous unit of work that (re)builds a book's chunks."""

    id: int | None = None
    book_id: int
    status: JobStatus = JobStatus.QUEUED
    chunk_size: int
    total_items: int = 0
    completed_items: int = 0
    error_message: str | None = None
    created_at: datetime = Field(default_factory=datetime.now)
    started_at: datetime | None = None
    completed_at: datetime | None = None


class JobProgress(BaseModel):
    """Snapshot of a chunk job for progress display."""

    job_id: int
    book_id: int
    status: JobStatus
    total_items: int
    completed_items: int
    error_message: str | None = None

    @property
    def percent(self) -> float:
        if self.total_items <= 0:
            return 100.0 if self.status.is_success else 0.0
        return round(self.completed_items / self.total_items * 100, 1)


class SyncJob(BaseModel):
    """A batch reconciliation run over one or more books."""

    id: int | None = None
    status: JobStatus = JobStatus.QUEUED
    book_ids: list[int] = Field(default_factory=list)
    total_items: int = 0
    completed_items: int = 0
    synced_books: int = 0
    synced_chunks: int = 0
    error_message: str | None = None
    errors: list[dict] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.now)
    started_at: datetime | None = None
    completed_at: datetime | None = None
