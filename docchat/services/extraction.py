"""Content extraction for files, web pages, videos and raw text."""

import asyncio
import csv
import io
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Tuple
from urllib.parse import urlparse

from docx import Document as DocxDocument
from pypdf import PdfReader

from docchat.core.config import Settings
from docchat.core.exceptions import (
    EmptyContentError,
    ExtractionError,
    InsufficientContentError,
    InvalidSourceError,
    UnsupportedFormatError,
)
from docchat.models.document import DocumentMetadata, DocumentType, ExtractedContent, IngestionSource
from docchat.services.fetcher import PageFetcher, parse_html
from docchat.services.storage import FileStorage
from docchat.services.youtube import YouTubeService

logger = logging.getLogger(__name__)

PDF_MIME = "application/pdf"
WORD_MIMES = (
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/msword",
)
CSV_MIME = "text/csv"
TEXT_MIMES = ("text/plain", "text/markdown")

STRIPPED_ELEMENTS = "script, style, nav, footer, aside, .ad, .advertisement"
CONTENT_SELECTORS = ["main", "article", ".content", ".post", ".entry"]
TEXT_TITLE_CHARS = 50


def collapse_whitespace(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def decode_pdf(data: bytes) -> Tuple[str, int]:
    """Return the text of every page and the page count."""
    reader = PdfReader(io.BytesIO(data))
    pages = [page.extract_text() or "" for page in reader.pages]
    return "\n".join(pages), len(pages)


def decode_word(data: bytes) -> str:
    document = DocxDocument(io.BytesIO(data))
    return "\n".join(paragraph.text for paragraph in document.paragraphs)


def decode_csv(data: bytes) -> str:
    """Render CSV rows as ``column: value`` lines, one block per row."""
    reader = csv.DictReader(io.StringIO(data.decode("utf-8-sig", errors="replace")))
    rows = list(reader)
    if not rows:
        return ""

    headers = reader.fieldnames or []
    lines = [f"CSV Data with columns: {', '.join(headers)}", ""]
    for index, row in enumerate(rows, start=1):
        lines.append(f"Row {index}:")
        for header in headers:
            lines.append(f"{header}: {row.get(header) or ''}")
        lines.append("")
    return "\n".join(lines)


class ContentExtractor:
    """Normalizes every supported source into title, text and metadata."""

    def __init__(
        self,
        settings: Settings,
        storage: FileStorage,
        fetcher: PageFetcher,
        youtube: Optional[YouTubeService] = None,
    ) -> None:
        """
        Initialize the extractor.

        Args:
            settings: Application settings.
            storage: Storage holding uploaded files.
            fetcher: HTTP fetcher for web pages.
            youtube: Video extractor; built on the same fetcher when omitted.
        """
        self.storage = storage
        self.fetcher = fetcher
        self.youtube = youtube or YouTubeService(fetcher)
        self.min_landmark_chars = settings.min_landmark_chars
        self.min_url_content_chars = settings.min_url_content_chars

    async def extract(self, source: IngestionSource) -> ExtractedContent:
        """
        Extract content from any ingestion source.

        Raises:
            ExtractionError: Or one of its subclasses, when the source
                cannot be turned into usable text.
        """
        if source.kind == DocumentType.FILE:
            return await self.extract_file(
                source.path, source.original_name or Path(source.path or "").name,
                source.mime_type or "", size=source.size, title=source.title,
            )
        if source.kind == DocumentType.URL:
            return await self.extract_url(source.url or "", title=source.title)
        if source.kind == DocumentType.YOUTUBE:
            return await self.youtube.extract(source.url or "", title=source.title)
        return self.extract_text(source.text or "", title=source.title)

    async def extract_file(
        self,
        path: Optional[str],
        original_name: str,
        mime_type: str,
        size: Optional[int] = None,
        title: Optional[str] = None,
    ) -> ExtractedContent:
        """
        Decode an uploaded file according to its MIME type.

        Raises:
            UnsupportedFormatError: For MIME types without a decoder.
            EmptyContentError: When the decoder produced no text.
        """
        if mime_type not in (PDF_MIME, CSV_MIME) + WORD_MIMES + TEXT_MIMES:
            raise UnsupportedFormatError(f"Unsupported file type: {mime_type}")
        if not path:
            raise InvalidSourceError("File source has no stored path")

        data = await self.storage.read_bytes(path)
        metadata = DocumentMetadata(
            original_name=original_name,
            mime_type=mime_type,
            file_size=size if size is not None else len(data),
        )

        if mime_type == PDF_MIME:
            try:
                text, page_count = await asyncio.to_thread(decode_pdf, data)
            except Exception as e:
                raise ExtractionError("Failed to extract text from PDF") from e
            metadata.pages = page_count
        elif mime_type in WORD_MIMES:
            try:
                text = await asyncio.to_thread(decode_word, data)
            except Exception as e:
                raise ExtractionError("Failed to extract text from Word document") from e
        elif mime_type == CSV_MIME:
            try:
                text = decode_csv(data)
            except csv.Error as e:
                raise ExtractionError("Failed to extract text from CSV") from e
        else:
            text = data.decode("utf-8", errors="replace")

        if not text.strip():
            raise EmptyContentError("No text content could be extracted from the file")

        logger.info(f"Extracted {len(text)} characters from {original_name}")
        return ExtractedContent(
            title=title or Path(original_name).stem,
            text=text,
            metadata=metadata,
        )

    async def extract_url(self, url: str, title: Optional[str] = None) -> ExtractedContent:
        """
        Fetch a web page and keep its main readable text.

        Raises:
            InvalidSourceError: If the URL is not http(s).
            InsufficientContentError: If the page yields too little text.
        """
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            raise InvalidSourceError(f"Invalid URL: {url}")

        soup = parse_html(await self.fetcher.get_text(url))
        for element in soup.select(STRIPPED_ELEMENTS):
            element.decompose()

        page_title = ""
        if soup.title:
            page_title = soup.title.get_text(strip=True)
        if not page_title:
            heading = soup.find("h1")
            page_title = heading.get_text(strip=True) if heading else ""

        content = ""
        for selector in CONTENT_SELECTORS:
            elements = soup.select(selector)
            text = " ".join(element.get_text(" ") for element in elements).strip()
            if len(text) > self.min_landmark_chars:
                content = text
                break
        if not content:
            body = soup.body or soup
            content = body.get_text(" ")

        content = collapse_whitespace(content)
        if len(content) < self.min_url_content_chars:
            raise InsufficientContentError("Insufficient content extracted from URL")

        return ExtractedContent(
            title=title or page_title or "Web Page",
            text=content,
            metadata=DocumentMetadata(
                url=url,
                domain=parsed.hostname,
                extracted_at=datetime.now(timezone.utc).isoformat(),
            ),
        )

    def extract_text(self, text: str, title: Optional[str] = None) -> ExtractedContent:
        """Pass raw text through; the title defaults to its first characters."""
        if not text.strip():
            raise EmptyContentError("Text is empty")
        return ExtractedContent(
            title=title or text[:TEXT_TITLE_CHARS].strip() + "...",
            text=text,
            metadata=DocumentMetadata(length=len(text)),
        )
