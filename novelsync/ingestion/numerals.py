"""Chinese numeral parsing, width normalization and book-name detection."""

import re
from pathlib import Path

# Characters that may appear in a chapter number: Chinese numerals,
# ASCII digits and full-width digits.
NUMERAL_CHARS = "零〇一二三四五六七八九十百千万萬两兩0-9０-９"
NUMERAL = f"[{NUMERAL_CHARS}]"

CHAPTER_MARKERS = "章回集話话篇部卷節节"

_CHINESE_DIGITS: dict[str, int] = {
    "零": 0,
    "〇": 0,
    "一": 1,
    "二": 2,
    "两": 2,
    "兩": 2,
    "三": 3,
    "四": 4,
    "五": 5,
    "六": 6,
    "七": 7,
    "八": 8,
    "九": 9,
    "十": 10,
    "百": 100,
    "千": 1000,
    "万": 10000,
    "萬": 10000,
}

_FULL_WIDTH_TABLE = {code: code - 0xFEE0 for code in range(0xFF01, 0xFF5F)}
_FULL_WIDTH_TABLE[0x3000] = 0x20  # ideographic space


def normalize_to_half_width(text: str) -> str:
    """Convert full-width ASCII letters, digits and punctuation to half-width."""
    if not text:
        return ""
    return text.translate(_FULL_WIDTH_TABLE)


def chinese_to_number(value: str) -> int:
    """Convert a Chinese, Arabic or full-width numeral to an integer.

    Examples: "十二" -> 12, "一百零五" -> 105, "１２" -> 12, "2" -> 2.
    Unknown characters are ignored; an empty string yields 0.

    Args:
        value: The numeral text.

    Returns:
        The integer value, or 0 when nothing could be parsed.
    """
    if not value:
        return 0

    normalized = normalize_to_half_width(value.strip())
    if normalized.isascii() and normalized.isdigit():
        return int(normalized)

    result = 0
    temp = 0
    for char in normalized:
        if char.isascii() and char.isdigit():
            # Mixed forms such as "1百" are rare; treat digits as units.
            num = int(char)
        else:
            num = _CHINESE_DIGITS.get(char)
            if num is None:
                continue

        if num < 10:
            temp = temp + num if temp >= 10 else num
        elif num == 10:
            temp = 10 if temp == 0 else temp * 10
        elif num in (100, 1000):
            if temp == 0:
                temp = num
            else:
                result += temp * num
                temp = 0
        else:  # 万
            result = (result + temp) * 10000
            temp = 0

    return result + temp


_BOOK_NAME_PATTERNS: list[re.Pattern[str]] = [
    # "都市猎艳人生 第126章" -> "都市猎艳人生"
    re.compile(rf"^(.+?)\s*第{NUMERAL}+[{CHAPTER_MARKERS}]"),
    # "书名（第126章）" -> "书名"
    re.compile(rf"^(.+?)[（(]第{NUMERAL}+[{CHAPTER_MARKERS}][）)]"),
    # "书名 - 第126章" -> "书名"
    re.compile(rf"^(.+?)\s*[-－]\s*第{NUMERAL}+[{CHAPTER_MARKERS}]"),
    # "书名 126" -> "书名"
    re.compile(rf"^(.+?)\s+{NUMERAL}+$"),
    # Everything before the first separator
    re.compile(r"^(.+?)(?:\s*[第（(【]|$)"),
]


def detect_book_name(title: str) -> str | None:
    """Guess a book name from a thread title or heading line.

    Args:
        title: A single line such as "书名 第12章 标题".

    Returns:
        The book name, or None when no candidate of at least two
        characters is found.
    """
    if not title:
        return None

    for pattern in _BOOK_NAME_PATTERNS:
        match = pattern.match(title.strip())
        if not match:
            continue
        name = match.group(1).strip()
        name = re.sub(r"\s*[-－]\s*$", "", name)
        name = re.sub(r"\s*[（(].*?[）)]\s*$", "", name)
        name = re.sub(r"\s*【.*?】\s*$", "", name)
        name = re.sub(r"\s*[（(【\[]$", "", name)
        if len(name) >= 2:
            return name

    return None


def extract_book_name_from_filename(filename: str) -> str | None:
    """Derive a book name from an uploaded file's name.

    Args:
        filename: Original filename, with or without directories.

    Returns:
        Half-width normalized book name, or None if it is uninformative.
    """
    if not filename:
        return None

    stem = Path(filename).stem
    detected = detect_book_name(stem)
    if detected and detected != stem:
        return normalize_to_half_width(detected)

    name = re.sub(rf"第{NUMERAL}+[{CHAPTER_MARKERS}]", "", stem)
    name = re.sub(r"[（(【〔〖〝「『].*?[）)】〕〗〞」』]", "", name)
    name = re.sub(r"\s*[-－]\s*", " ", name).strip()
    name = re.sub(r"^file-\d+-", "", name)
    name = normalize_to_half_width(name.strip())

    return name if len(name) >= 2 else None
