"""Tests for docextract.core.ocr module.

Tests OCR text reconstruction and the batch OCR form:
- text_from_tsv: rebuilding text from tesseract TSV
- TSVMerger / PageTextJoiner: multi-page assembly
- rasterize: pdftoppm invocation and page ordering
- ocr: PDFs, images, skipped pages, page cap
"""

import importlib
from pathlib import Path

import pytest

from docextract.core.cancel import CancelToken
from docextract.core.config import ExtractionDefaults
from docextract.core.errors import ExtractionCancelled, RasterizeError, ToolError
from docextract.core.ocr import (
    PageTextJoiner,
    TSVMerger,
    is_image_mime,
    ocr,
    rasterize,
    text_from_tsv,
)

# Bind the submodule explicitly: docextract.core re-exports the function `ocr`.
ocr_module = importlib.import_module("docextract.core.ocr")


# =============================================================================
# text_from_tsv tests
# =============================================================================


class TestTextFromTSV:
    """Tests for rebuilding text from a TSV token table."""

    def test_lines_and_blocks(self, sample_tsv):
        """Same line joins with a space, new line with \\n, new block with a blank line."""
        assert text_from_tsv(sample_tsv) == "Hello world\nSecond line\n\nNew block"

    def test_header_only(self):
        """A table with no rows yields no text."""
        assert text_from_tsv("level\tpage_num\tblock_num") == ""

    def test_empty(self):
        assert text_from_tsv("") == ""

    def test_short_rows_skipped(self, make_page_tsv):
        """Rows with fewer than 12 columns are ignored."""
        tsv = make_page_tsv("Valid") + "\n5\t1\t1\t1\t1\t2\tshort"
        assert text_from_tsv(tsv) == "Valid"

    def test_new_paragraph_same_block(self):
        """A paragraph change inside one block also starts a new paragraph."""
        tsv = "\n".join([
            "header",
            "5\t1\t1\t1\t1\t1\t0\t0\t0\t0\t90\tFirst",
            "5\t1\t1\t2\t1\t1\t0\t0\t0\t0\t90\tSecond",
        ])
        assert text_from_tsv(tsv) == "First\n\nSecond"

    def test_non_numeric_positions_read_as_zero(self):
        tsv = "\n".join([
            "header",
            "5\t1\tx\ty\tz\t1\t0\t0\t0\t0\t90\tOne",
            "5\t1\t0\t0\t0\t2\t0\t0\t0\t0\t90\tTwo",
        ])
        assert text_from_tsv(tsv) == "One Two"

    def test_superscript_positions_read_as_zero(self):
        tsv = "\n".join([
            "header",
            "5\t1\t\u00b2\t0\t0\t1\t0\t0\t0\t0\t90\tOne",
            "5\t1\t0\t0\t0\t2\t0\t0\t0\t0\t90\tTwo",
        ])
        assert text_from_tsv(tsv) == "One Two"


# =============================================================================
# Multi-page assembly tests
# =============================================================================


class TestTSVMerger:
    """Tests for concatenating per-page TSV tables."""

    def test_keeps_first_header_only(self, make_page_tsv):
        merger = TSVMerger()
        merger.add(make_page_tsv("One"))
        merger.add(make_page_tsv("Two"))
        merged = merger.value()
        assert merged.count("level\tpage_num") == 1
        assert "One" in merged
        assert "Two" in merged

    def test_empty_pages_ignored(self, make_page_tsv):
        merger = TSVMerger()
        merger.add("")
        merger.add(make_page_tsv("One"))
        assert merger.value() == make_page_tsv("One")

    def test_empty(self):
        assert TSVMerger().value() == ""


class TestPageTextJoiner:
    """Tests for joining page texts."""

    def test_blank_line_between_pages(self):
        joiner = PageTextJoiner()
        joiner.add("Page one")
        joiner.add("")
        joiner.add("Page two")
        assert joiner.value() == "Page one\n\nPage two"

    def test_normalizes_whitespace(self):
        joiner = PageTextJoiner()
        joiner.add("  lots   of   space  ")
        assert joiner.value() == "lots of space"


# =============================================================================
# MIME checks
# =============================================================================


class TestIsImageMime:
    """Tests for image MIME detection."""

    @pytest.mark.parametrize("mime", ["image/png", "image/jpeg", "image/tiff", "image/bmp", "image/webp"])
    def test_supported_images(self, mime):
        assert is_image_mime(mime)

    @pytest.mark.parametrize("mime", ["application/pdf", "image/gif", "text/plain", ""])
    def test_other_types(self, mime):
        assert not is_image_mime(mime)


# =============================================================================
# rasterize tests
# =============================================================================


class TestRasterize:
    """Tests for the pdftoppm wrapper."""

    @pytest.mark.asyncio
    async def test_invocation_and_page_order(self, monkeypatch, tmp_path):
        """Runs pdftoppm at 300 DPI with the page cap; returns images in page order."""
        calls = []

        async def fake_run_tool(args, token=None, timeout=None, error_cls=ToolError):
            calls.append((args, error_cls))
            prefix = Path(args[-1])
            for n in ("10", "02", "01"):
                (prefix.parent / f"{prefix.name}-{n}.png").write_bytes(b"png")
            (prefix.parent / "unrelated.txt").write_text("x")
            return b""

        monkeypatch.setattr(ocr_module, "run_tool", fake_run_tool)

        images = await rasterize(tmp_path / "in.pdf", tmp_path / "page", 12)

        args, error_cls = calls[0]
        assert args[0] == "pdftoppm"
        assert args[args.index("-r") + 1] == str(ExtractionDefaults.RASTER_DPI)
        assert args[args.index("-l") + 1] == "12"
        assert "-png" in args
        assert error_cls is RasterizeError
        assert [p.name for p in images] == ["page-01.png", "page-02.png", "page-10.png"]


# =============================================================================
# ocr tests
# =============================================================================


class TestOCR:
    """Tests for the batch OCR entry point."""

    @pytest.mark.asyncio
    async def test_pdf_pages_joined(self, fake_ocr_tools):
        result = await ocr(b"%PDF-1.4", "application/pdf", max_pages=10)
        assert result.text == "Page1\n\nPage2\n\nPage3"
        assert result.tsv.count("level\tpage_num") == 1
        assert "Page3" in result.tsv

    @pytest.mark.asyncio
    async def test_page_cap_passed_to_rasterizer(self, fake_ocr_tools):
        fake_ocr_tools.pages = 5
        result = await ocr(b"%PDF-1.4", "application/pdf", max_pages=2)
        assert fake_ocr_tools.rasterize_calls == [2]
        assert fake_ocr_tools.ocr_calls == [1, 2]
        assert "Page3" not in result.text

    @pytest.mark.asyncio
    async def test_non_positive_cap_uses_default(self, fake_ocr_tools):
        await ocr(b"%PDF-1.4", "application/pdf", max_pages=0)
        assert fake_ocr_tools.rasterize_calls == [ExtractionDefaults.MAX_OCR_PAGES]

    @pytest.mark.asyncio
    async def test_failing_page_skipped(self, fake_ocr_tools):
        """A page the OCR engine cannot read is skipped; the others survive."""
        fake_ocr_tools.failing_pages = {2}
        result = await ocr(b"%PDF-1.4", "application/pdf")
        assert result.text == "Page1\n\nPage3"
        assert fake_ocr_tools.ocr_calls == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_rasterize_failure_raises(self, fake_ocr_tools):
        fake_ocr_tools.raster_error = RasterizeError("pdftoppm", "broken pdf", 1)
        with pytest.raises(RasterizeError):
            await ocr(b"%PDF-1.4", "application/pdf")

    @pytest.mark.asyncio
    async def test_no_pages(self, fake_ocr_tools):
        fake_ocr_tools.pages = 0
        result = await ocr(b"%PDF-1.4", "application/pdf")
        assert result.text == ""
        assert result.tsv == ""

    @pytest.mark.asyncio
    async def test_image_goes_straight_to_tesseract(self, fake_ocr_tools):
        result = await ocr(b"\x89PNG", "image/png")
        assert result.text == "Page1"
        assert fake_ocr_tools.rasterize_calls == []

    @pytest.mark.asyncio
    async def test_image_failure_raises(self, fake_ocr_tools):
        fake_ocr_tools.failing_pages = {1}
        with pytest.raises(ToolError):
            await ocr(b"\x89PNG", "image/png")

    @pytest.mark.asyncio
    async def test_unsupported_and_empty(self, fake_ocr_tools):
        assert (await ocr(b"hello", "text/plain")).text == ""
        assert (await ocr(b"", "application/pdf")).text == ""
        assert fake_ocr_tools.ocr_calls == []

    @pytest.mark.asyncio
    async def test_cancelled_between_pages(self, fake_ocr_tools):
        """Cancelling after the first page stops before the second."""
        token = CancelToken()
        fake_ocr_tools.pages = 5
        fake_ocr_tools.on_page = lambda page: token.cancel()

        with pytest.raises(ExtractionCancelled):
            await ocr(b"%PDF-1.4", "application/pdf", token=token)
        assert fake_ocr_tools.ocr_calls == [1]
