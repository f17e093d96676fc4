"""Book ingestion: parsing, chapter detection and chunk assembly."""

from novelsync.ingestion.chunker import assemble_chunks, sort_chapters_for_export
from novelsync.ingestion.detector import detect_chapters
from novelsync.ingestion.parser import BookParser

__all__ = ["BookParser", "assemble_chunks", "detect_chapters", "sort_chapters_for_export"]
