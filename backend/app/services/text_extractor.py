"""Knowledge document text extraction (plain text and PDF via PyMuPDF)."""

import re
from urllib.parse import urlparse

import pymupdf  # PyMuPDF

from app.errors import ExtractionFailedError, UnsupportedFormatError

TEXT_PLAIN = "text/plain"
APPLICATION_PDF = "application/pdf"
APPLICATION_MSWORD = "application/msword"
APPLICATION_DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

_EXTENSION_TYPES = {
    ".txt": TEXT_PLAIN,
    ".pdf": APPLICATION_PDF,
    ".docx": APPLICATION_DOCX,
}

# Control characters that Postgres TEXT cannot store (NUL, etc.)
_ILLEGAL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")


def detect_content_type(source_url: str, declared_type: str | None = None) -> str:
    """
    Resolve the effective MIME type of a knowledge document.

    The declared type wins when present; otherwise the extension of the URL
    path decides. Returns an empty string when neither is conclusive.
    """
    if declared_type:
        return declared_type
    path = urlparse(source_url).path.lower() or source_url.lower()
    for extension, content_type in _EXTENSION_TYPES.items():
        if path.endswith(extension):
            return content_type
    return ""


class TextExtractor:
    """Service for turning raw knowledge documents into plain text."""

    @staticmethod
    async def extract_text(
        data: bytes,
        source_url: str,
        declared_type: str | None = None,
    ) -> str:
        """
        Extract plain text from a document buffer.

        Args:
            data: Raw bytes of the document
            source_url: Where the document lives; its extension is used when
                no type is declared
            declared_type: MIME type recorded at upload time, if any

        Returns:
            Extracted text

        Raises:
            UnsupportedFormatError: Type is neither plain text nor PDF (DOCX included)
            ExtractionFailedError: The PDF could not be parsed
        """
        content_type = detect_content_type(source_url, declared_type)

        if content_type == TEXT_PLAIN:
            return data.decode("utf-8", errors="replace")

        if content_type == APPLICATION_PDF:
            return TextExtractor._extract_pdf(data)

        raise UnsupportedFormatError(
            "Unsupported knowledge base file type. Supported: .txt, .pdf"
        )

    @staticmethod
    def _extract_pdf(data: bytes) -> str:
        """Join each page's words with single spaces and pages with a blank line."""
        try:
            doc = pymupdf.open(stream=data, filetype="pdf")
            try:
                pages = []
                for page in doc:
                    # words: (x0, y0, x1, y1, word, block_no, line_no, word_no)
                    words = page.get_text("words", sort=True)
                    pages.append(" ".join(word[4] for word in words))
            finally:
                doc.close()
        except Exception as e:
            raise ExtractionFailedError(f"Failed to extract text from PDF: {e}") from e

        full_text = "\n\n".join(pages).strip()
        return _ILLEGAL_CHARS.sub("", full_text)

    @staticmethod
    async def validate_pdf(data: bytes) -> bool:
        """
        Validate that the bytes represent a readable PDF with at least one page.

        Args:
            data: Raw bytes to validate

        Returns:
            True if valid PDF, False otherwise
        """
        try:
            doc = pymupdf.open(stream=data, filetype="pdf")
            is_valid = len(doc) > 0
            doc.close()
            return is_valid
        except Exception:
            return False


# Singleton instance
text_extractor = TextExtractor()
