"""Book data model."""

from datetime import datetime

from pydantic import BaseModel, Field


class Book(BaseModel):
    """Bookkeeping record for an ingested novel and its sync state."""

    id: int | None = None
    title: str
    author: str = ""
    category: str = ""
    description: str = ""
    source_path: str = ""
    file_format: str = "txt"  # "txt", "html", "pdf", "docx", "url"
    sync_enabled: bool = True
    rebuild_chunks: bool = False
    last_synced_at: datetime | None = None
    remote_container_id: str | None = None
    created_at: datetime = Field(default_factory=datetime.now)
