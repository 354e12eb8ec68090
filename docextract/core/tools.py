"""Availability checks for the external programs the extractors shell out to.

Each check runs one PATH lookup per process and caches the answer for the
process lifetime. A missing tool is a capability gap, never an error.
"""

import logging
import shutil
from dataclasses import dataclass
from functools import lru_cache

from docextract.core.config import ToolNames

logger = logging.getLogger(__name__)


def _on_path(tool: str) -> bool:
    found = shutil.which(tool) is not None
    if not found:
        logger.debug(f"{tool} not found on PATH, related extraction layer disabled")
    return found


@lru_cache(maxsize=None)
def has_pdftotext() -> bool:
    """Whether the PDF text-extraction tool (poppler-utils) is installed."""
    return _on_path(ToolNames.TEXT_EXTRACTOR)


@lru_cache(maxsize=None)
def has_pdftoppm() -> bool:
    """Whether the PDF rasterizer (poppler-utils) is installed."""
    return _on_path(ToolNames.RASTERIZER)


@lru_cache(maxsize=None)
def has_tesseract() -> bool:
    """Whether the OCR engine is installed."""
    return _on_path(ToolNames.OCR_ENGINE)


def ocr_available() -> bool:
    """OCR of scanned PDFs needs both the rasterizer and the OCR engine."""
    return has_tesseract() and has_pdftoppm()


def image_ocr_available() -> bool:
    """Images go straight to the OCR engine; no rasterizer needed."""
    return has_tesseract()


@dataclass(frozen=True)
class Capabilities:
    """Snapshot of which extraction layers can run in this environment."""

    pdftotext: bool
    pdftoppm: bool
    tesseract: bool

    @property
    def pdf_ocr(self) -> bool:
        return self.tesseract and self.pdftoppm

    @property
    def image_ocr(self) -> bool:
        return self.tesseract


@lru_cache(maxsize=None)
def capabilities() -> Capabilities:
    """Return the process-wide capability record, computed on first use."""
    return Capabilities(
        pdftotext=has_pdftotext(),
        pdftoppm=has_pdftoppm(),
        tesseract=has_tesseract(),
    )


def reset_tool_cache() -> None:
    """Forget cached lookups (for testing)."""
    for check in (has_pdftotext, has_pdftoppm, has_tesseract, capabilities):
        check.cache_clear()
