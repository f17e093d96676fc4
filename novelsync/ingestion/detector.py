"""Chapter boundary detection for Chinese novels."""

import logging
import re
from dataclasses import dataclass

from novelsync.errors import ParseAnomaly
from novelsync.ingestion.numerals import (
    CHAPTER_MARKERS,
    NUMERAL,
    NUMERAL_CHARS,
    chinese_to_number,
    normalize_to_half_width,
)
from novelsync.models.chapter import ChapterRecord

logger = logging.getLogger(__name__)

PRIMARY_SERIES = "official"

_OPEN = "（(【〔〖〝「『"
_CLOSE = "）)】〕〗〞」』"

# "bookname（3）chaptername": the book-name echo is discarded, the trailing
# text becomes the chapter name.
COMPOUND_PATTERN = re.compile(rf"^(.+?)[（(]\s*({NUMERAL}+)\s*[）)](.+)$")

# Generic heading patterns, tried in order on the stripped line.
HEADING_PATTERNS: list[re.Pattern[str]] = [
    re.compile(rf"^第\s*({NUMERAL}+)\s*([{CHAPTER_MARKERS}])"),
    re.compile(
        rf"^[{_OPEN}]\s*({NUMERAL}+)\s*[{_CLOSE}]"
        rf"(?=\s*(?:[{CHAPTER_MARKERS}]|$|\s|：|:))"
    ),
    re.compile(rf"^第\s*({NUMERAL}+)(?=\s*(?:[{CHAPTER_MARKERS}]|$|\s|：|:))"),
]

FINAL_PATTERNS: list[re.Pattern[str]] = [
    re.compile(rf"^[終终]([{CHAPTER_MARKERS}])(?=\s|$|：|:|、)"),
    re.compile(r"^[（(][終终][）)]"),
]

MARKDOWN_PREFIX = re.compile(r"^#{1,3}\s*")

_SERIES_IN_PARENS = re.compile(
    rf"[（(]([^）){NUMERAL_CHARS}]+?)({NUMERAL}+)[）)]"
)


@dataclass
class _Heading:
    """A parsed chapter heading line."""

    number: int | None
    marker: str
    is_final: bool
    title_normalized: str
    name: str
    series: str
    book_name: str | None = None


def extract_series_type(title: str) -> str:
    """Classify the series a chapter heading belongs to.

    Args:
        title: Chapter heading text.

    Returns:
        "official" for the main story, "番外" for side stories,
        "doujinshi" for fan works, or the series name found in a
        "（名稱N）" group.
    """
    if not title:
        return PRIMARY_SERIES

    match = _SERIES_IN_PARENS.search(title)
    if match:
        series_name = match.group(1).strip()
        if series_name and series_name not in ("待續", "待续", "第"):
            return series_name

    if any(word in title for word in ("番外", "外傳", "外传")):
        return "番外"

    lowered = title.lower()
    if "doujinshi" in lowered or any(
        word in title for word in ("同人誌", "同人志", "同人")
    ):
        return "doujinshi"

    return PRIMARY_SERIES


def normalize_chapter_title(title: str) -> str:
    """Strip markdown markers and leading bracket tags from a heading."""
    if not title:
        return ""

    normalized = MARKDOWN_PREFIX.sub("", title.strip())
    normalized = re.sub(r"^【.*?】", "", normalized)
    normalized = re.sub(r"^\[.*?\]", "", normalized)
    return normalized.strip()


def _chapter_name(heading: str, match_end: int) -> str:
    """Return the subtitle that follows a matched chapter marker."""
    rest = heading[match_end:]
    return rest.strip().lstrip("：:、.．-－—　").strip()


def _to_number(numeral: str) -> int:
    number = chinese_to_number(numeral)
    if number == 0 and not re.fullmatch(r"[零〇0０]+", numeral):
        raise ParseAnomaly(f"Unparseable chapter numeral: {numeral!r}")
    return number


def parse_heading(line: str) -> _Heading | None:
    """Interpret a single line as a chapter heading.

    Args:
        line: One line of source text.

    Returns:
        The parsed heading, or None if the line is not a boundary.

    Raises:
        ParseAnomaly: If the line looks like a heading but its numeral
            cannot be interpreted.
    """
    stripped = line.strip()
    if not stripped:
        return None

    heading = MARKDOWN_PREFIX.sub("", stripped)
    title_normalized = normalize_chapter_title(stripped)
    series = extract_series_type(heading)

    compound = COMPOUND_PATTERN.match(heading)
    if compound and heading[0] not in _OPEN:
        number = _to_number(compound.group(2))
        if number > 0:
            return _Heading(
                number=number,
                marker="章",
                is_final=False,
                title_normalized=title_normalized,
                name=compound.group(3).strip(),
                series=series,
                book_name=normalize_to_half_width(compound.group(1).strip()),
            )

    for pattern in FINAL_PATTERNS:
        match = pattern.match(heading)
        if match:
            marker = match.group(1) if match.groups() else "章"
            return _Heading(
                number=None,
                marker=marker,
                is_final=True,
                title_normalized=title_normalized,
                name=_chapter_name(heading, match.end()),
                series=series,
            )

    for pattern in HEADING_PATTERNS:
        match = pattern.match(heading)
        if not match:
            continue
        number = _to_number(match.group(1))
        if number <= 0:
            return None
        marker = match.group(2) if len(match.groups()) > 1 else "章"
        return _Heading(
            number=number,
            marker=marker,
            is_final=False,
            title_normalized=title_normalized,
            name=_chapter_name(heading, match.end()),
            series=series,
        )

    return None


def _display_title(heading: _Heading) -> str:
    if heading.name:
        return heading.name
    if heading.is_final:
        return f"終{heading.marker}"
    return f"第{heading.number}{heading.marker}"


def _whole_text_chapter(text: str, lines: list[str]) -> list[ChapterRecord]:
    return [
        ChapterRecord(
            number=1,
            title="第1章",
            title_normalized="第1章",
            line_start=1,
            line_end=max(len(lines), 1),
            content=text,
        )
    ]


def detect_chapters(text: str) -> list[ChapterRecord]:
    """Split raw text into ordered chapter records.

    Every line of the input belongs to exactly one chapter. Lines before the
    first detected heading are folded into the first chapter. If no heading
    is found, the whole text is returned as chapter 1. Never raises.

    Args:
        text: Raw UTF-8 text of the whole book.

    Returns:
        Chapters in source order, with final chapters (終章) renumbered to
        one past the highest regular chapter number.
    """
    text = text or ""
    lines = text.split("\n")

    try:
        chapters = _scan(lines)
    except Exception:
        logger.exception("Chapter detection failed; using whole text as one chapter")
        return _whole_text_chapter(text, lines)

    if not chapters:
        return _whole_text_chapter(text, lines)

    _resolve_final_chapters(chapters)
    return chapters


def _scan(lines: list[str]) -> list[ChapterRecord]:
    """Scan lines and build chapter records with contiguous ranges."""
    chapters: list[ChapterRecord] = []
    seen: set[tuple[str, int | str]] = set()
    starts: list[int] = []  # 0-indexed start line per chapter

    for index, line in enumerate(lines):
        try:
            heading = parse_heading(line)
        except ParseAnomaly as exc:
            logger.debug("Line %d treated as body text: %s", index + 1, exc)
            continue
        if heading is None:
            continue

        key = (heading.series, "final" if heading.is_final else heading.number)
        if key in seen:
            logger.debug("Duplicate chapter heading at line %d skipped: %s", index + 1, key)
            continue
        seen.add(key)

        starts.append(index)
        chapters.append(
            ChapterRecord(
                number=heading.number,
                title=_display_title(heading),
                title_normalized=heading.title_normalized,
                name=heading.name,
                series=heading.series,
                line_start=index + 1,
                line_end=index + 1,
                is_final=heading.is_final,
                extracted_book_name=heading.book_name,
            )
        )

    if not chapters:
        return []

    # Preamble lines belong to the first chapter.
    starts[0] = 0
    chapters[0].line_start = 1

    for i, chapter in enumerate(chapters):
        end = starts[i + 1] if i + 1 < len(chapters) else len(lines)
        chapter.line_end = end
        chapter.content = "\n".join(lines[starts[i]:end])

    return chapters


def _resolve_final_chapters(chapters: list[ChapterRecord]) -> None:
    """Renumber final chapters to max(regular chapter numbers) + 1."""
    regular = [c.number for c in chapters if not c.is_final and c.number is not None]
    final_number = (max(regular) if regular else 0) + 1
    for chapter in chapters:
        if chapter.is_final:
            chapter.number = final_number
            chapter.is_final = False
