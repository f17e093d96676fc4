"""Chapter-aligned chunk assembly."""

import logging
import math
import re

from novelsync.models.chapter import ChapterRecord, ChapterSummary
from novelsync.models.chunk import ChunkRecord

logger = logging.getLogger(__name__)

CHAPTER_SEPARATOR = "\n"


def sort_chapters_for_export(
    chapters: list[ChapterRecord], primary_series: str = "official"
) -> list[ChapterRecord]:
    """Order chapters for export.

    Chapter number ascending (unresolved numbers last); ties are broken by
    series with the primary series first, then by series name, then by the
    original position.

    Args:
        chapters: Chapters in any order.
        primary_series: Series key that sorts before all others.

    Returns:
        A new, sorted list.
    """
    indexed = list(enumerate(chapters))
    indexed.sort(
        key=lambda item: (
            item[1].number is None,
            item[1].number if item[1].number is not None else math.inf,
            item[1].series != primary_series,
            item[1].series,
            item[0],
        )
    )
    return [chapter for _, chapter in indexed]


def generate_toc(chapters: list[ChapterRecord]) -> str:
    """Render a table of contents for the whole book."""
    if not chapters:
        return ""

    lines = ["# 目錄", "", "[[toc]]", "", "## 章節目錄", ""]
    for chapter in chapters:
        if chapter.number is None:
            continue
        label = f"第{chapter.number}章"
        if chapter.name and chapter.name != label:
            slug = re.sub(r"\s+", "-", chapter.name)
            lines.append(f"- [{label} {chapter.name}](#{label}-{slug})")
        else:
            lines.append(f"- [{label}](#{label})")
    lines.extend(["", "---", "", ""])
    return "\n".join(lines)


def _chapter_range(first: int | None, last: int | None) -> str:
    if first is None or last is None:
        return ""
    if first == last:
        return f"({first})"
    return f"({first} - {last})"


def _render_header(
    chunk: ChunkRecord, book_title: str, metadata: dict[str, str]
) -> str:
    """Build the metadata header placed above a chunk's chapters."""
    parts: list[str] = []
    author = metadata.get("author", "")
    author_part = f" 作者：{author}" if author else ""
    parts.append(
        f"【{book_title}】{_chapter_range(chunk.first_chapter, chunk.last_chapter)}"
        f"{author_part}\n\n"
    )

    if author or metadata.get("category") or metadata.get("description"):
        parts.append("---\n\n")
        if author:
            parts.append(f"**作者：** {author}\n\n")
        if metadata.get("category"):
            parts.append(f"**分類：** {metadata['category']}\n\n")
        if metadata.get("description"):
            parts.append(f"**簡介：** {metadata['description']}\n\n")
        parts.append("---\n\n")

    parts.append(f"**分塊資訊：** 第 {chunk.chunk_number} / {chunk.total_chunks} 塊\n\n")
    if chunk.first_chapter is not None and chunk.last_chapter is not None:
        if chunk.first_chapter == chunk.last_chapter:
            parts.append(f"**章節範圍：** 第 {chunk.first_chapter} 章\n\n")
        else:
            parts.append(
                f"**章節範圍：** 第 {chunk.first_chapter} 章 至 第 {chunk.last_chapter} 章\n\n"
            )
    parts.append(f"**行數範圍：** 第 {chunk.line_start} 行 至 第 {chunk.line_end} 行\n\n")
    parts.append("---\n\n")
    return "".join(parts)


def _render_body(chapters: list[ChapterRecord]) -> str:
    """Join chapter contents, giving each chapter a markdown heading."""
    bodies: list[str] = []
    for chapter in chapters:
        first, _, rest = chapter.content.partition("\n")
        stripped = first.strip()
        if stripped.startswith("#"):
            content = chapter.content
        elif stripped and stripped == chapter.title_normalized:
            # The heading line itself opens the chapter; promote it.
            content = f"# {stripped}\n{rest}" if rest else f"# {stripped}"
        else:
            content = f"# {chapter.title}\n{chapter.content}"
        bodies.append(content)
    return CHAPTER_SEPARATOR.join(bodies)


def _build_chunk(chunk_number: int, chapters: list[ChapterRecord]) -> ChunkRecord:
    numbers = sorted(c.number for c in chapters if c.number is not None)
    return ChunkRecord(
        chunk_number=chunk_number,
        content=CHAPTER_SEPARATOR.join(c.content for c in chapters),
        line_start=min(c.line_start for c in chapters),
        line_end=max(c.line_end for c in chapters),
        first_chapter=numbers[0] if numbers else None,
        last_chapter=numbers[-1] if numbers else None,
        chapter_count=len(chapters),
        chapters_data=[
            ChapterSummary(
                chapter_number=c.number,
                chapter_title=c.title,
                series=c.series,
                line_start=c.line_start,
                line_end=c.line_end,
            )
            for c in chapters
        ],
    )


def assemble_chunks(
    chapters: list[ChapterRecord],
    target_size: int,
    book_title: str = "",
    metadata: dict[str, str] | None = None,
    include_toc: bool = False,
) -> list[ChunkRecord]:
    """Group consecutive whole chapters into size-bounded chunks.

    A new chunk starts when adding the next chapter would push the current
    chunk's chapter content past ``target_size`` characters. A chapter larger
    than the budget forms a chunk of its own; chapters are never split.

    Args:
        chapters: Chapters already in export order
            (see ``sort_chapters_for_export``).
        target_size: Character budget for the chapter content of one chunk.
        book_title: When set, each chunk's content is rendered with a
            header block and per-chapter headings.
        metadata: Optional "author", "category" and "description" for the
            header block.
        include_toc: Insert a table of contents of the whole book after the
            header block.

    Returns:
        Chunks numbered densely from 1, with ``total_chunks`` filled in.
    """
    if not chapters:
        return []
    if target_size <= 0:
        raise ValueError(f"target_size must be positive, got {target_size}")

    groups: list[list[ChapterRecord]] = []
    current: list[ChapterRecord] = []
    current_size = 0

    for chapter in chapters:
        size = len(chapter.content)
        added = size + (len(CHAPTER_SEPARATOR) if current else 0)
        if current and current_size + added > target_size:
            groups.append(current)
            current = []
            current_size = 0
            added = size
        current.append(chapter)
        current_size += added

    if current:
        groups.append(current)

    chunks = [_build_chunk(i, group) for i, group in enumerate(groups, start=1)]
    total = len(chunks)
    for chunk in chunks:
        chunk.total_chunks = total

    if book_title:
        toc = generate_toc(chapters) if include_toc else ""
        for chunk, group in zip(chunks, groups):
            chunk.content = (
                _render_header(chunk, book_title, metadata or {})
                + toc
                + _render_body(group)
            )

    logger.debug(
        "Assembled %d chunks from %d chapters (target_size=%d)",
        total,
        len(chapters),
        target_size,
    )
    return chunks
