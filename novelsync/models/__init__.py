"""Data models for the novel sync application."""

from novelsync.models.book import Book
from novelsync.models.chapter import ChapterRecord, ChapterSummary
from novelsync.models.chunk import ChunkRecord
from novelsync.models.job import ChunkJob, JobProgress, JobStatus, SyncJob
from novelsync.models.parsed import ParsedBook

__all__ = [
    "Book",
    "ChapterRecord",
    "ChapterSummary",
    "ChunkJob",
    "ChunkRecord",
    "JobProgress",
    "JobStatus",
    "ParsedBook",
    "SyncJob",
]
