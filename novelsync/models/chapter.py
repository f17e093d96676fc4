"""Chapter data models produced by the chapter detector."""

from pydantic import BaseModel


class ChapterRecord(BaseModel):
    """A numbered, titled, contiguous span of the source text.

    ``number`` is None only while a final chapter (終章) is unresolved;
    ``detect_chapters`` resolves it to ``max(regular numbers) + 1``.
    """

    number: int | None
    title: str
    title_normalized: str = ""
    name: str = ""
    series: str = "official"
    line_start: int  # 1-indexed, inclusive
    line_end: int  # 1-indexed, inclusive
    content: str = ""
    is_final: bool = False
    extracted_book_name: str | None = None


class ChapterSummary(BaseModel):
    """Compact description of one chapter inside a chunk."""

    chapter_number: int | None
    chapter_title: str
    series: str = "official"
    line_start: int
    line_end: int
