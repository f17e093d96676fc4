"""Book source parser supporting TXT, Markdown, HTML, PDF, DOCX and web pages."""

import logging
import re
from pathlib import Path

import chardet
import requests
from bs4 import BeautifulSoup

from novelsync.ingestion.detector import detect_chapters
from novelsync.ingestion.numerals import (
    detect_book_name,
    extract_book_name_from_filename,
    normalize_to_half_width,
)
from novelsync.models.book import Book
from novelsync.models.parsed import ParsedBook

logger = logging.getLogger(__name__)

# Supported file extensions mapped to format identifiers
SUPPORTED_FORMATS: dict[str, str] = {
    ".pdf": "pdf",
    ".txt": "txt",
    ".md": "txt",
    ".docx": "docx",
    ".html": "html",
    ".htm": "html",
}

# Candidate containers for the main text of a forum or novel page, most
# specific first.
CONTENT_SELECTORS: list[str] = [
    ".post-content",
    ".thread-content",
    ".content",
    "#post-content",
    "td[colspan]",
    ".message",
    "article",
    "main",
]

METADATA_PATTERNS: dict[str, list[re.Pattern[str]]] = {
    "author": [
        re.compile(r"作者\s*[：:]\s*(.+)"),
        re.compile(r"^(.+?)\s*[著編]$"),
    ],
    "category": [re.compile(r"(?:分類|類型|類別|分类|类型)\s*[：:]\s*(.+)")],
    "description": [re.compile(r"(?:簡介|描述|简介)\s*[：:]\s*(.+)")],
    "source_url": [re.compile(r"(https?://\S+)")],
}

USER_AGENT = "novelsync/1.0"


class BookParser:
    """Parses book files and web pages into a ParsedBook representation.

    Args:
        request_timeout: Timeout in seconds for fetching web pages.
    """

    def __init__(self, request_timeout: float = 30.0) -> None:
        self._request_timeout = request_timeout

    def parse(self, file_path: str | Path) -> ParsedBook:
        """Parse a book file into a ParsedBook structure.

        Args:
            file_path: Path to the book file.

        Returns:
            A ParsedBook containing raw text and metadata.

        Raises:
            FileNotFoundError: If file_path does not exist.
            ValueError: If the file format is not supported.
        """
        path = Path(file_path)
        if not path.exists():
            raise FileNotFoundError(f"File not found: {path}")

        file_format = self._detect_format(path)

        dispatch = {
            "pdf": self._parse_pdf,
            "txt": self._parse_txt,
            "docx": self._parse_docx,
            "html": self._parse_html,
        }
        raw_text = dispatch[file_format](path)

        return self._build(raw_text, str(path), file_format, path.name)

    def parse_url(self, url: str) -> ParsedBook:
        """Fetch a web page and parse its main text.

        Args:
            url: http(s) URL of the page.

        Returns:
            A ParsedBook with file_format "url".

        Raises:
            ValueError: If the URL scheme is not http or https.
            requests.RequestException: If the page cannot be fetched.
        """
        if not url.startswith(("http://", "https://")):
            raise ValueError(f"Unsupported URL scheme: {url}")

        response = requests.get(
            url, timeout=self._request_timeout, headers={"User-Agent": USER_AGENT}
        )
        response.raise_for_status()
        if not response.encoding or response.encoding.lower() == "iso-8859-1":
            response.encoding = response.apparent_encoding

        soup = BeautifulSoup(response.text, "lxml")
        page_title = soup.title.get_text(strip=True) if soup.title else ""
        raw_text = self.clean_html(response.text)

        return self._build(raw_text, url, "url", page_title)

    def _build(
        self, raw_text: str, source_path: str, file_format: str, name_hint: str
    ) -> ParsedBook:
        metadata = extract_metadata(raw_text)
        title = self._extract_title(raw_text, name_hint, file_format)
        return ParsedBook(
            title=title,
            author=metadata.get("author", ""),
            category=metadata.get("category", ""),
            description=metadata.get("description", ""),
            raw_text=raw_text,
            source_path=source_path,
            file_format=file_format,
            metadata=metadata,
        )

    def _detect_format(self, file_path: Path) -> str:
        """Determine file format from extension.

        Raises:
            ValueError: If extension is not supported.
        """
        ext = file_path.suffix.lower()
        if ext not in SUPPORTED_FORMATS:
            raise ValueError(
                f"Unsupported file format: '{ext}'. "
                f"Supported: {', '.join(SUPPORTED_FORMATS.keys())}"
            )
        return SUPPORTED_FORMATS[ext]

    def _parse_pdf(self, file_path: Path) -> str:
        """Extract text from a PDF file using pymupdf (fitz)."""
        import fitz  # type: ignore[import-untyped]

        try:
            with fitz.open(str(file_path)) as doc:
                pages = []
                for page in doc:
                    text = page.get_text("text")
                    if text.strip():
                        pages.append(text)
                return "\n".join(pages)
        except Exception:
            logger.exception("Failed to parse PDF: %s", file_path)
            return ""

    def _parse_txt(self, file_path: Path) -> str:
        """Read a plain text or Markdown file with encoding detection.

        Tries UTF-8 first, then uses chardet for fallback detection.
        GB18030 is the last resort, covering GBK and GB2312 files.

        Args:
            file_path: Path to the text file.

        Returns:
            The file content as a string.
        """
        try:
            return file_path.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            pass

        raw_bytes = file_path.read_bytes()
        detected = chardet.detect(raw_bytes)
        encoding = detected.get("encoding") or "utf-8"
        confidence = detected.get("confidence", 0)

        if confidence < 0.7:
            logger.warning(
                "Low confidence encoding detection for %s: %s (%.0f%%)",
                file_path,
                encoding,
                confidence * 100,
            )

        try:
            return raw_bytes.decode(encoding)
        except (UnicodeDecodeError, LookupError):
            try:
                return raw_bytes.decode("gb18030")
            except UnicodeDecodeError:
                logger.error("Failed to decode file: %s", file_path)
                return raw_bytes.decode("utf-8", errors="replace")

    def _parse_docx(self, file_path: Path) -> str:
        """Extract text from a DOCX file using python-docx, one paragraph per line."""
        import docx

        try:
            doc = docx.Document(str(file_path))
            return "\n".join(para.text for para in doc.paragraphs)
        except Exception:
            logger.exception("Failed to parse DOCX: %s", file_path)
            return ""

    def _parse_html(self, file_path: Path) -> str:
        """Extract the main text from an HTML file."""
        try:
            return self.clean_html(self._parse_txt(file_path))
        except Exception:
            logger.exception("Failed to parse HTML: %s", file_path)
            return ""

    @staticmethod
    def clean_html(html: str) -> str:
        """Strip markup and chrome from an HTML page, keeping the main text.

        Args:
            html: Raw HTML.

        Returns:
            Text of the most specific content container holding more than
            100 characters, or of the whole body.
        """
        if not html:
            return ""

        soup = BeautifulSoup(html, "lxml")
        for tag in soup(["script", "style", "noscript", "nav"]):
            tag.decompose()
        for tag in soup.select(".ad, .advertisement, .ads, .sidebar, .footer, .header"):
            tag.decompose()

        content = ""
        for selector in CONTENT_SELECTORS:
            element = soup.select_one(selector)
            if element is None:
                continue
            content = element.get_text(separator="\n")
            if len(content) > 100:
                break

        if len(content) < 100:
            body = soup.body or soup
            content = body.get_text(separator="\n")

        content = content.replace("~", "")
        lines = [line.rstrip() for line in content.split("\n")]
        return "\n".join(lines).strip()

    def _extract_title(self, text: str, name_hint: str, file_format: str) -> str:
        """Pick a book title from the filename, the text, or chapter headings.

        Order: filename (or page title), the first lines of the text,
        then a book name echoed in compound chapter headings.
        """
        title = None
        if name_hint:
            if file_format == "url":
                title = detect_book_name(name_hint)
            else:
                title = extract_book_name_from_filename(name_hint)

        if not title:
            for line in text.strip().split("\n")[:10]:
                candidate = detect_book_name(line.strip())
                if candidate and len(candidate) <= 50:
                    title = candidate
                    break

        if not title:
            for chapter in detect_chapters(text)[:1]:
                title = chapter.extracted_book_name

        if not title:
            title = Path(name_hint).stem if name_hint else "未命名"

        return normalize_to_half_width(title.strip())


def extract_metadata(text: str) -> dict[str, str]:
    """Extract author, category, description and source URL from a text header.

    Only the first 100 lines are scanned; the first match per field wins.
    """
    metadata: dict[str, str] = {}
    for line in text.split("\n")[:100]:
        stripped = line.strip()
        if not stripped:
            continue
        for field, patterns in METADATA_PATTERNS.items():
            if field in metadata:
                continue
            for pattern in patterns:
                match = pattern.search(stripped)
                if match:
                    metadata[field] = match.group(1).strip()
                    break
    return metadata


class SourceTextProvider:
    """Returns the raw text of a book, independent of its original format."""

    def __init__(self, parser: BookParser | None = None) -> None:
        self._parser = parser or BookParser()

    def get_text(self, book: Book) -> str:
        """Load the current source text for a book.

        Raises:
            FileNotFoundError: If the book's source file is missing.
        """
        if book.file_format == "url":
            return self._parser.parse_url(book.source_path).raw_text
        return self._parser.parse(book.source_path).raw_text
