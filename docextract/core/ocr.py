"""Optical character recognition for scanned PDFs and images.

PDFs are rasterized with pdftoppm, then each page image goes through
tesseract in TSV mode. Images go to tesseract directly.

TSV columns: level, page_num, block_num, par_num, line_num, word_num,
left, top, width, height, conf, text. The raw table is kept alongside the
reconstructed text for later use (confidence scores, bounding boxes).

Callers should check ``ocr_available()`` / ``image_ocr_available()`` first.
"""

import logging
import tempfile
from dataclasses import dataclass
from pathlib import Path

from docextract.core.cancel import CancelToken
from docextract.core.config import ExtractionDefaults, MimeTypes, ToolNames
from docextract.core.errors import RasterizeError, ToolError
from docextract.core.process import run_tool
from docextract.core.text import is_pdf, normalize_whitespace

logger = logging.getLogger(__name__)

_TSV_TEXT_COLUMN = 11


@dataclass
class OCRResult:
    """Text and token table produced by the batch OCR form."""

    text: str = ""
    tsv: str = ""


def is_image_mime(mime: str) -> bool:
    """Whether the MIME type is a raster format tesseract can read."""
    return mime in MimeTypes.IMAGES


def _atoi(value: str) -> int:
    """Parse a non-negative integer column, 0 on anything else."""
    return int(value) if value.isascii() and value.isdigit() else 0


def text_from_tsv(tsv: str) -> str:
    """Rebuild readable text from a tesseract TSV token table.

    Words on the same (block, paragraph, line) are joined by a space, a new
    line within the same block/paragraph starts a new line, and a new block or
    paragraph starts a new paragraph (blank line). Empty tokens are skipped.
    """
    rows = tsv.split("\n")
    if len(rows) < 2:
        return ""

    parts: list[str] = []
    last: tuple[int, int, int] | None = None

    for row in rows[1:]:  # skip header
        fields = row.split("\t")
        if len(fields) <= _TSV_TEXT_COLUMN:
            continue
        word = fields[_TSV_TEXT_COLUMN].strip()
        if not word:
            continue

        block, par, line = _atoi(fields[2]), _atoi(fields[3]), _atoi(fields[4])
        if last is not None:
            if (block, par) != last[:2]:
                parts.append("\n\n")
            elif line != last[2]:
                parts.append("\n")
            else:
                parts.append(" ")
        parts.append(word)
        last = (block, par, line)

    return "".join(parts)


async def ocr_page_image(image_path: str | Path, token: CancelToken | None = None) -> tuple[str, str]:
    """Run tesseract on one raster image.

    Returns:
        (text, tsv) where text is rebuilt from the TSV table.

    Raises:
        ToolError: tesseract failed.
        ExtractionCancelled: The token fired.
    """
    stdout = await run_tool([ToolNames.OCR_ENGINE, str(image_path), "stdout", "tsv"], token=token)
    tsv = stdout.decode("utf-8", errors="replace")
    return text_from_tsv(tsv), tsv


async def rasterize(
    pdf_path: str | Path,
    output_prefix: str | Path,
    max_pages: int,
    token: CancelToken | None = None,
) -> list[Path]:
    """Render up to ``max_pages`` PDF pages to PNG files.

    Returns:
        Page image paths in page order.

    Raises:
        RasterizeError: pdftoppm failed.
        ExtractionCancelled: The token fired.
    """
    output_prefix = Path(output_prefix)
    await run_tool(
        [
            ToolNames.RASTERIZER,
            "-png",
            "-r", str(ExtractionDefaults.RASTER_DPI),
            "-l", str(max_pages),
            str(pdf_path),
            str(output_prefix),
        ],
        token=token,
        error_cls=RasterizeError,
    )
    # pdftoppm zero-pads page numbers, so lexical order is page order.
    return sorted(output_prefix.parent.glob(f"{output_prefix.name}*.png"))


class TSVMerger:
    """Concatenates per-page TSV tables, keeping only the first header."""

    def __init__(self) -> None:
        self._parts: list[str] = []

    def add(self, page_tsv: str) -> None:
        if not page_tsv:
            return
        if not self._parts:
            self._parts.append(page_tsv)
            return
        _, sep, body = page_tsv.partition("\n")
        if sep:
            self._parts.append(body)

    def value(self) -> str:
        return "".join(self._parts)


class PageTextJoiner:
    """Joins non-empty page texts with blank lines between pages."""

    def __init__(self) -> None:
        self._pages: list[str] = []

    def add(self, page_text: str) -> None:
        if page_text:
            self._pages.append(page_text)

    def value(self) -> str:
        return normalize_whitespace("\n\n".join(self._pages))


async def ocr(
    data: bytes,
    mime: str,
    max_pages: int = ExtractionDefaults.MAX_OCR_PAGES,
    token: CancelToken | None = None,
) -> OCRResult:
    """Run OCR to completion on a PDF or image.

    Args:
        data: Raw document bytes.
        mime: MIME type; anything but PDF or a supported image yields an
            empty result.
        max_pages: Page cap for PDFs (<= 0 selects the default).
        token: Optional cancellation token.

    Raises:
        RasterizeError: pdftoppm failed (PDFs).
        ToolError: tesseract failed (images; failing PDF pages are skipped).
        ExtractionCancelled: The token fired.
    """
    if not data:
        return OCRResult()
    if max_pages <= 0:
        max_pages = ExtractionDefaults.MAX_OCR_PAGES

    if is_pdf(mime):
        return await _ocr_pdf(data, max_pages, token)
    if is_image_mime(mime):
        return await _ocr_image(data, token)
    return OCRResult()


async def _ocr_pdf(data: bytes, max_pages: int, token: CancelToken | None) -> OCRResult:
    with tempfile.TemporaryDirectory(prefix="docextract-ocr-") as tmp_dir:
        pdf_path = Path(tmp_dir) / "input.pdf"
        pdf_path.write_bytes(data)

        images = await rasterize(pdf_path, Path(tmp_dir) / "page", max_pages, token)
        if not images:
            return OCRResult()

        text = PageTextJoiner()
        tsv = TSVMerger()
        for page_num, image in enumerate(images, start=1):
            if token is not None:
                token.check()
            try:
                page_text, page_tsv = await ocr_page_image(image, token)
            except ToolError as e:
                logger.warning(f"OCR skipped page {page_num}/{len(images)}: {e}")
                continue
            text.add(page_text)
            tsv.add(page_tsv)

    return OCRResult(text=text.value(), tsv=tsv.value())


async def _ocr_image(data: bytes, token: CancelToken | None) -> OCRResult:
    with tempfile.TemporaryDirectory(prefix="docextract-ocr-") as tmp_dir:
        image_path = Path(tmp_dir) / "input.png"
        image_path.write_bytes(data)
        text, tsv = await ocr_page_image(image_path, token)
    return OCRResult(text=normalize_whitespace(text), tsv=tsv)
