"""PDF text-layer extraction for eFayda documents.

Reads the linear plain-text layer and page count of a PDF with pypdf.
The pipeline never parses the PDF object model itself; it only consumes
"bytes in, text out" through the :class:`TextLayerSource` protocol so
tests can substitute a fake.
"""

import io
from pathlib import Path
from typing import Protocol

from pypdf import PdfReader
from pypdf.errors import PdfReadError

from fayda_ocr.utils.logger import get_logger

logger = get_logger(__name__)


class TextLayerSource(Protocol):
    """Capability: given PDF bytes, return the plain-text layer."""

    def extract_text(self, pdf_source: Path | bytes) -> str: ...

    def get_page_count(self, pdf_source: Path | bytes) -> int: ...


class PDFHandler:
    """Extracts the text layer of a PDF using pypdf.

    Args:
        page_separator: String inserted between the text of consecutive pages.
    """

    def __init__(self, page_separator: str = "\n") -> None:
        self.page_separator = page_separator

    def _open(self, pdf_source: Path | bytes) -> PdfReader:
        """Open a reader over a file path or raw bytes.

        Raises:
            FileNotFoundError: If a path is given and the file does not exist.
            RuntimeError: If pypdf cannot parse the document.
        """
        if isinstance(pdf_source, str | Path):
            path = Path(pdf_source)
            if not path.exists():
                raise FileNotFoundError(f"PDF file not found: {path}")
            pdf_source = path.read_bytes()

        try:
            return PdfReader(io.BytesIO(pdf_source))
        except (PdfReadError, ValueError, OSError) as exc:
            raise RuntimeError(f"PDF parsing failed: {exc}") from exc

    def extract_text(self, pdf_source: Path | bytes) -> str:
        """Extract the plain-text layer of every page.

        Args:
            pdf_source: Path to a PDF file or raw PDF bytes.

        Returns:
            Page texts joined by the page separator.

        Raises:
            FileNotFoundError: If a path is given and the file does not exist.
            RuntimeError: If text extraction fails.
        """
        reader = self._open(pdf_source)
        try:
            pages = [page.extract_text() or "" for page in reader.pages]
        except Exception as exc:
            raise RuntimeError(f"PDF text extraction failed: {exc}") from exc

        text = self.page_separator.join(pages)
        logger.info(
            "Extracted %d characters of text from %d pages", len(text), len(pages)
        )
        return text

    def get_page_count(self, pdf_source: Path | bytes) -> int:
        """Get the number of pages in a PDF.

        Args:
            pdf_source: Path to a PDF file or raw PDF bytes.

        Returns:
            Number of pages in the PDF.
        """
        count = len(self._open(pdf_source).pages)
        logger.debug("PDF has %d pages", count)
        return count
