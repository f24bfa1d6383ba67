from __future__ import annotations

import io
import logging
import re
import uuid
from dataclasses import dataclass
from pathlib import PurePath
from typing import Protocol

from bs4 import BeautifulSoup
from docx import Document as DocxDocument
from pypdf import PdfReader

from resumematch.core.converters import DocumentConverter, normalize_conversion
from resumematch.db.repositories import RequestStorage
from resumematch.errors import ConversionError, ValidationError
from resumematch.types import ConversionMethod, Document, DocumentType, HealthStatus

logger = logging.getLogger(__name__)

PDF_MIME = "application/pdf"
DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
TEXT_EXTENSIONS = {".txt", ".md", ".markdown", ".csv", ".html", ".htm"}
HTML_EXTENSIONS = {".html", ".htm"}

_MIME_BY_EXTENSION = {
    ".pdf": PDF_MIME,
    ".docx": DOCX_MIME,
    ".txt": "text/plain",
    ".md": "text/markdown",
    ".markdown": "text/markdown",
    ".csv": "text/csv",
    ".html": "text/html",
    ".htm": "text/html",
}

EXHAUSTED_MESSAGE = "\n".join(
    [
        "Could not extract text from the document.",
        "",
        "Possible fixes:",
        "1. Copy the text of the document and send it as a plain message",
        "2. Enable the document conversion service (CONVERSION_API_URL)",
        "3. Upload the file as PDF, DOCX or TXT",
    ]
)


@dataclass(slots=True)
class SourceFile:
    content: bytes
    filename: str | None = None
    mime_type: str | None = None

    @property
    def extension(self) -> str:
        return PurePath(self.filename).suffix.lower() if self.filename else ""

    @property
    def effective_mime(self) -> str:
        return self.mime_type or detect_mime_type(self.filename)

    @property
    def is_pdf(self) -> bool:
        return self.mime_type == PDF_MIME or self.extension == ".pdf"

    @property
    def is_docx(self) -> bool:
        return self.mime_type == DOCX_MIME or self.extension == ".docx"

    @property
    def is_html(self) -> bool:
        return self.mime_type == "text/html" or self.extension in HTML_EXTENSIONS

    @property
    def is_text(self) -> bool:
        if self.filename is None and self.mime_type is None:
            return True
        if self.mime_type and self.mime_type.startswith("text/"):
            return True
        return self.extension in TEXT_EXTENSIONS


def detect_mime_type(filename: str | None) -> str:
    if not filename:
        return "application/octet-stream"
    return _MIME_BY_EXTENSION.get(PurePath(filename).suffix.lower(), "application/octet-stream")


class ConversionTier(Protocol):
    method: ConversionMethod

    def applies(self, source: SourceFile) -> bool: ...

    def extract(self, source: SourceFile) -> str | None: ...


class PlainTextTier:
    method: ConversionMethod = "plain-text"

    def applies(self, source: SourceFile) -> bool:
        return source.is_text and not (source.is_pdf or source.is_docx)

    def extract(self, source: SourceFile) -> str | None:
        text = source.content.decode("utf-8", errors="replace")
        if source.is_html:
            text = html_to_text(text)
        return text


class InferenceConversionTier:
    method: ConversionMethod = "inference-conversion"

    def __init__(self, converter: DocumentConverter):
        self.converter = converter

    def applies(self, source: SourceFile) -> bool:
        return source.is_pdf or source.is_docx

    def extract(self, source: SourceFile) -> str | None:
        if not self.converter.available:
            logger.warning("Conversion capability unavailable; skipping tier")
            return None

        payloads = self.converter.to_markdown(
            name=source.filename or "document",
            content=source.content,
            mime_type=source.effective_mime,
        )
        content = normalize_conversion(payloads)
        if content is None:
            logger.warning("Conversion returned no content payloads=%s", len(payloads or []))
        return content


class LegacyFallbackTier:
    method: ConversionMethod = "legacy-fallback"

    def applies(self, source: SourceFile) -> bool:
        return source.is_pdf or source.is_docx

    def extract(self, source: SourceFile) -> str | None:
        if source.is_pdf:
            reader = PdfReader(io.BytesIO(source.content))
            return "\n".join((page.extract_text() or "") for page in reader.pages)
        doc = DocxDocument(io.BytesIO(source.content))
        return "\n".join(paragraph.text for paragraph in doc.paragraphs)


class RawFallbackTier:
    method: ConversionMethod = "raw-fallback"

    def applies(self, source: SourceFile) -> bool:
        return not (source.is_pdf or source.is_docx)

    def extract(self, source: SourceFile) -> str | None:
        return source.content.decode("utf-8", errors="replace")


class DocumentPipeline:
    """Turns uploaded bytes into an immutable Document.

    Tiers run in order; the first one returning non-empty text wins and its name is
    recorded as ``conversion_method``.
    """

    def __init__(
        self,
        storage: RequestStorage,
        converter: DocumentConverter,
        *,
        max_file_size_mb: float = 10,
        tiers: list[ConversionTier] | None = None,
    ):
        self.storage = storage
        self.converter = converter
        self.max_file_size_mb = max_file_size_mb
        self.tiers: list[ConversionTier] = tiers or [
            PlainTextTier(),
            InferenceConversionTier(converter),
            LegacyFallbackTier(),
            RawFallbackTier(),
        ]

    def process_document(
        self,
        request_id: str,
        document_type: DocumentType,
        content: bytes,
        filename: str | None = None,
        mime_type: str | None = None,
    ) -> Document:
        self._check_size(content)

        text, method = self.convert_to_text(content, filename=filename, mime_type=mime_type)
        document = Document(
            id=generate_document_id(),
            request_id=request_id,
            type=document_type,
            original_name=filename,
            mime_type=mime_type,
            size=len(content) if filename or mime_type else None,
            text=text,
            word_count=count_words(text),
            conversion_method=method,
        )
        self.storage.store_document(document)
        logger.info(
            "Document processed document_id=%s request_id=%s words=%s method=%s",
            document.id,
            request_id,
            document.word_count,
            method,
        )
        return document

    def convert_to_text(
        self,
        content: bytes,
        *,
        filename: str | None = None,
        mime_type: str | None = None,
    ) -> tuple[str, ConversionMethod]:
        source = SourceFile(content=content, filename=filename, mime_type=mime_type)
        for tier in self.tiers:
            if not tier.applies(source):
                continue
            try:
                raw = tier.extract(source)
            except Exception as exc:
                logger.warning("Conversion tier failed method=%s file=%s error=%s", tier.method, filename, exc)
                continue
            if raw is None:
                continue
            text = markdown_to_text(raw)
            if text:
                return text, tier.method
            logger.warning("Conversion tier produced empty text method=%s file=%s", tier.method, filename)

        raise ConversionError(EXHAUSTED_MESSAGE)

    def get_request_documents(self, request_id: str) -> list[Document]:
        return self.storage.get_request_documents(request_id)

    def health_check(self) -> HealthStatus:
        if not self.converter.available:
            return HealthStatus(
                status="healthy",
                message="Document pipeline operational without conversion capability",
                details={"conversion": "unavailable"},
            )
        return HealthStatus(
            status="healthy",
            message="Document pipeline operational",
            details={"conversion": "available"},
        )

    def _check_size(self, content: bytes) -> None:
        if not content:
            raise ValidationError("Document is empty")
        size_mb = len(content) / (1024 * 1024)
        if size_mb > self.max_file_size_mb:
            raise ValidationError(f"File too large: {size_mb:.2f}MB (maximum: {self.max_file_size_mb}MB)")


def generate_document_id() -> str:
    return f"doc-{uuid.uuid4().hex}"


def count_words(text: str) -> int:
    return len(text.split())


def html_to_text(html: str) -> str:
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "noscript"]):
        tag.extract()
    lines = [line.strip() for line in soup.get_text("\n").splitlines() if line.strip()]
    return "\n".join(lines)


def markdown_to_text(markdown: str) -> str:
    out = re.sub(r"^#{1,6}\s+", "", markdown, flags=re.MULTILINE)
    out = re.sub(r"\*\*(.*?)\*\*", r"\1", out)
    out = re.sub(r"__(.*?)__", r"\1", out)
    out = re.sub(r"\*(.*?)\*", r"\1", out)
    out = re.sub(r"(?<!\w)_(.+?)_(?!\w)", r"\1", out)
    out = re.sub(r"`([^`\n]*)`", r"\1", out)
    out = re.sub(r"!?\[([^\]]+)\]\([^)]+\)", r"\1", out)
    out = re.sub(r"\n\s*\n", "\n", out)
    return out.strip()
