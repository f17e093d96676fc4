"""Tag extraction for synced notes."""

import re

NOVEL_TAG = "小說"

# Tag name -> keywords that imply it. ASCII keywords match whole words only.
TAG_KEYWORDS: dict[str, list[str]] = {
    "小說": ["小说", "小說", "novel"],
    "後宮": ["后宫", "後宮", "harem"],
    "都市": ["都市", "urban"],
    "古裝": ["古装", "古裝", "historical"],
    "穿越": ["穿越", "time travel", "transmigration"],
    "重生": ["重生", "reborn", "reincarnation"],
    "玄幻": ["玄幻", "xuanhuan"],
    "武俠": ["武侠", "武俠", "martial arts", "wuxia"],
    "現代": ["现代", "現代", "modern"],
    "校園": ["校园", "校園", "campus"],
    "職場": ["职场", "職場", "workplace"],
    "科幻": ["科幻", "sci-fi", "science fiction"],
    "懸疑": ["悬疑", "懸疑", "mystery", "thriller"],
    "愛情": ["爱情", "愛情", "romance"],
    "BL": ["boys love", "耽美"],
    "GL": ["girls love", "百合"],
}


def _contains(text: str, keyword: str) -> bool:
    keyword = keyword.lower()
    if keyword.isascii():
        return re.search(rf"\b{re.escape(keyword)}\b", text) is not None
    return keyword in text


def extract_tags(title: str, content: str = "") -> list[str]:
    """Return genre tags implied by a title and optional text.

    When any genre matches, the generic novel tag is added as well.
    """
    if not title:
        return []

    text = f"{title} {content}".lower()
    found = [
        tag
        for tag, keywords in TAG_KEYWORDS.items()
        if any(_contains(text, keyword) for keyword in keywords)
    ]
    if found and NOVEL_TAG not in found:
        found.append(NOVEL_TAG)
    return found


def note_tags(author: str, title: str, unknown_author: str = "未知作者") -> list[str]:
    """Tags attached to every note of a book: the author plus title keywords."""
    tags: list[str] = []
    if author and author != unknown_author:
        tags.append(author)
    for tag in extract_tags(title):
        if tag not in tags:
            tags.append(tag)
    return tags
