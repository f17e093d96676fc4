"""Chunk data model."""

from datetime import datetime

from pydantic import BaseModel, Field

from novelsync.models.chapter import ChapterSummary


class ChunkRecord(BaseModel):
    """A contiguous run of whole chapters, the unit of remote synchronization."""

    id: int | None = None
    chunk_job_id: int | None = None
    book_id: int | None = None
    chunk_number: int
    total_chunks: int = 0
    content: str
    line_start: int
    line_end: int
    first_chapter: int | None = None
    last_chapter: int | None = None
    chapter_count: int = 0
    chapters_data: list[ChapterSummary] = Field(default_factory=list)
    remote_note_id: str | None = None
    superseded: bool = False
    created_at: datetime | None = None
