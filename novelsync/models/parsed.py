"""Parsed book data model for the ingestion pipeline."""

from pydantic import BaseModel, Field


class ParsedBook(BaseModel):
    """The result of parsing a raw book file or web page.

    Contains the full raw text and metadata extracted during parsing.
    """

    title: str
    author: str = ""
    category: str = ""
    description: str = ""
    raw_text: str
    source_path: str
    file_format: str  # "pdf", "txt", "docx", "html", "url"
    metadata: dict[str, str] = Field(default_factory=dict)
