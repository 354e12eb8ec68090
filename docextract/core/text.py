"""Text-layer extraction for PDFs and plain-text files.

PDFs go through pdftotext (poppler-utils), which keeps reading order and
table layout better than pure-Python readers. Plain text passes through.
Everything else yields empty text.
"""

import logging
import re
import tempfile
from pathlib import Path

from docextract.core.cancel import CancelToken
from docextract.core.config import ExtractionDefaults, MimeTypes, ToolNames
from docextract.core.process import run_tool
from docextract.core.tools import has_pdftotext

logger = logging.getLogger(__name__)

# Runs of horizontal whitespace (anything but a newline).
_COLLAPSE_SPACES = re.compile(r"[^\S\n]+")
# Three or more consecutive newlines.
_COLLAPSE_NEWLINES = re.compile(r"\n{3,}")


def normalize_whitespace(text: str) -> str:
    """Collapse excessive whitespace while keeping paragraph breaks.

    Horizontal runs become one space, 3+ newlines become exactly two,
    every line is trimmed, then the whole result.
    """
    text = _COLLAPSE_SPACES.sub(" ", text)
    text = _COLLAPSE_NEWLINES.sub("\n\n", text)
    return "\n".join(line.strip() for line in text.split("\n")).strip()


def is_scanned(extracted_text: str) -> bool:
    """True if the text layer is empty, i.e. the document likely needs OCR."""
    return not extracted_text.strip()


def is_pdf(mime: str) -> bool:
    return mime == MimeTypes.PDF


async def extract_text(
    data: bytes,
    mime: str,
    timeout: float | None = None,
    token: CancelToken | None = None,
) -> str:
    """Pull plain text from document content based on MIME type.

    Args:
        data: Raw document bytes.
        mime: MIME type of the document.
        timeout: Time bound for the PDF tool in seconds (None or <= 0 selects
            the default).
        token: Optional cancellation token.

    Returns:
        Whitespace-normalized text, or "" for unsupported types, empty input,
        or when the PDF tool is not installed.

    Raises:
        ToolError: pdftotext failed.
        ToolTimeoutError: pdftotext ran past the timeout.
    """
    if not data:
        return ""
    if timeout is None or timeout <= 0:
        timeout = ExtractionDefaults.TEXT_TIMEOUT_SECONDS

    if is_pdf(mime):
        if not has_pdftotext():
            return ""
        return await _extract_pdf(data, timeout, token)
    if mime.startswith("text/"):
        return normalize_whitespace(data.decode("utf-8", errors="replace"))
    return ""


async def _extract_pdf(data: bytes, timeout: float, token: CancelToken | None) -> str:
    with tempfile.TemporaryDirectory(prefix="docextract-text-") as tmp_dir:
        pdf_path = Path(tmp_dir) / "input.pdf"
        pdf_path.write_bytes(data)

        stdout = await run_tool(
            [ToolNames.TEXT_EXTRACTOR, "-layout", str(pdf_path), "-"],
            token=token,
            timeout=timeout,
        )

    text = normalize_whitespace(stdout.decode("utf-8", errors="replace"))
    logger.debug(f"pdftotext extracted {len(text)} chars")
    return text
