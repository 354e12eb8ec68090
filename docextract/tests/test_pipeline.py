"""Tests for docextract.pipeline module.

Tests the batch orchestrator with fake tools and a mocked model client:
- Layer ordering and what each layer contributes
- Degradation when tools or the model are missing
- Failures recorded as ExtractionError without raising
- Cancellation
"""

import json
from unittest.mock import AsyncMock

import pytest

from docextract import pipeline as pipeline_module
from docextract.core.cancel import CancelToken
from docextract.core.config import ExtractionSettings
from docextract.core.errors import ErrorCategory, ErrorSeverity, RasterizeError, ToolError, ToolTimeoutError
from docextract.pipeline import Pipeline, PipelineResult
from docextract.pydantic_models.hints import DocumentType, EntityContext


@pytest.fixture
def tools_present(monkeypatch):
    monkeypatch.setattr(pipeline_module, "ocr_available", lambda: True)
    monkeypatch.setattr(pipeline_module, "image_ocr_available", lambda: True)


@pytest.fixture
def tools_absent(monkeypatch):
    monkeypatch.setattr(pipeline_module, "ocr_available", lambda: False)
    monkeypatch.setattr(pipeline_module, "image_ocr_available", lambda: False)


@pytest.fixture
def pdf_text_layer(monkeypatch):
    """Fake text layer: PDFs read as a fixed string unless 'result' is changed."""
    layer = {"result": "Invoice 42\nTotal $1,500.00", "calls": 0}

    async def fake_extract_text(data, mime, timeout=None, token=None):
        layer["calls"] += 1
        if isinstance(layer["result"], Exception):
            raise layer["result"]
        if mime == "application/pdf":
            return layer["result"]
        if mime.startswith("text/"):
            return data.decode()
        return ""

    monkeypatch.setattr(pipeline_module, "extract_text", fake_extract_text)
    return layer


# =============================================================================
# PipelineResult
# =============================================================================


class TestPipelineResult:
    """Tests for the result record."""

    def test_empty_result(self):
        result = PipelineResult()
        assert result.err is None
        data = result.to_dict()
        assert data["hints"] is None
        assert data["err"] is None

    @pytest.mark.asyncio
    async def test_to_dict_is_json_serializable(self, pdf_text_layer, tools_absent, mock_llm_client):
        result = await Pipeline(llm_client=mock_llm_client).run(b"%PDF", "a.pdf", "application/pdf")
        data = json.loads(json.dumps(result.to_dict()))
        assert data["hints"]["document_type"] == "invoice"
        assert data["hints"]["date"] == "2025-01-15"


# =============================================================================
# Layer behavior
# =============================================================================


class TestPipelineLayers:
    """Tests for what each layer contributes."""

    @pytest.mark.asyncio
    async def test_empty_data(self, pdf_text_layer, mock_llm_client):
        result = await Pipeline(llm_client=mock_llm_client).run(b"", "a.pdf", "application/pdf")
        assert result == PipelineResult()
        assert pdf_text_layer["calls"] == 0
        mock_llm_client.chat_complete.assert_not_called()

    @pytest.mark.asyncio
    async def test_pdf_without_ocr_tools(self, pdf_text_layer, tools_absent, fake_ocr_tools, mock_llm_client):
        """No OCR tools: text layer plus hints, OCR silently skipped."""
        result = await Pipeline(llm_client=mock_llm_client).run(b"%PDF", "a.pdf", "application/pdf")

        assert result.extracted_text == "Invoice 42\nTotal $1,500.00"
        assert result.pdf_text == result.extracted_text
        assert result.ocr_text == ""
        assert not result.ocr_used
        assert result.llm_used
        assert result.hints.document_type == DocumentType.INVOICE
        assert result.err is None
        assert fake_ocr_tools.ocr_calls == []

    @pytest.mark.asyncio
    async def test_pdf_with_ocr(self, pdf_text_layer, tools_present, fake_ocr_tools, mock_llm_client):
        """Both sources reach the prompt; the text layer stays the primary text."""
        result = await Pipeline(llm_client=mock_llm_client).run(b"%PDF", "a.pdf", "application/pdf")

        assert result.ocr_used
        assert result.ocr_text == "Page1\n\nPage2\n\nPage3"
        assert result.extracted_text == "Invoice 42\nTotal $1,500.00"
        user = mock_llm_client.chat_complete.call_args.args[0][1]["content"]
        assert "## Source: PDF text layer" in user
        assert "## Source: OCR (tesseract)" in user

    @pytest.mark.asyncio
    async def test_scanned_pdf_uses_ocr_text(self, pdf_text_layer, tools_present, fake_ocr_tools):
        pdf_text_layer["result"] = ""
        result = await Pipeline().run(b"%PDF", "scan.pdf", "application/pdf")
        assert result.extracted_text == "Page1\n\nPage2\n\nPage3"
        assert result.pdf_text == ""

    @pytest.mark.asyncio
    async def test_image(self, pdf_text_layer, tools_present, fake_ocr_tools):
        result = await Pipeline().run(b"\x89PNG", "photo.png", "image/png")
        assert result.extracted_text == "Page1"
        assert result.ocr_used
        assert result.pdf_text == ""

    @pytest.mark.asyncio
    async def test_ocr_without_text_is_not_used(self, pdf_text_layer, tools_present, fake_ocr_tools):
        fake_ocr_tools.pages = 0
        result = await Pipeline().run(b"%PDF", "blank.pdf", "application/pdf")
        assert not result.ocr_used

    @pytest.mark.asyncio
    async def test_plain_text_skips_ocr(self, pdf_text_layer, tools_present, fake_ocr_tools, mock_llm_client):
        result = await Pipeline(llm_client=mock_llm_client).run(b"Receipt", "r.txt", "text/plain")
        assert result.extracted_text == "Receipt"
        assert result.pdf_text == ""
        assert fake_ocr_tools.ocr_calls == []
        assert result.llm_used

    @pytest.mark.asyncio
    async def test_page_cap_from_settings(self, pdf_text_layer, tools_present, fake_ocr_tools):
        await Pipeline(settings=ExtractionSettings(max_ocr_pages=2)).run(b"%PDF", "a.pdf", "application/pdf")
        assert fake_ocr_tools.rasterize_calls == [2]

    @pytest.mark.asyncio
    async def test_no_text_skips_model(self, pdf_text_layer, tools_absent, mock_llm_client):
        result = await Pipeline(llm_client=mock_llm_client).run(b"\x00\x01", "a.bin", "application/octet-stream")
        mock_llm_client.chat_complete.assert_not_called()
        assert not result.llm_used

    @pytest.mark.asyncio
    async def test_model_disabled_in_settings(self, pdf_text_layer, tools_absent, mock_llm_client):
        pipeline = Pipeline(llm_client=mock_llm_client, settings=ExtractionSettings(llm_enabled=False))
        result = await pipeline.run(b"%PDF", "a.pdf", "application/pdf")
        mock_llm_client.chat_complete.assert_not_called()
        assert result.hints is None

    @pytest.mark.asyncio
    async def test_entities_reach_prompt(self, pdf_text_layer, tools_absent, mock_llm_client):
        pipeline = Pipeline(llm_client=mock_llm_client, entity_context=EntityContext(vendors=["Acme HVAC"]))
        await pipeline.run(b"%PDF", "a.pdf", "application/pdf")
        system = mock_llm_client.chat_complete.call_args.args[0][0]["content"]
        assert "Vendors: Acme HVAC" in system


# =============================================================================
# Failures
# =============================================================================


class TestPipelineFailures:
    """Tests for non-fatal failure recording."""

    @pytest.mark.asyncio
    async def test_text_timeout_recorded(self, pdf_text_layer, tools_present, fake_ocr_tools):
        pdf_text_layer["result"] = ToolTimeoutError("pdftotext", 30)
        result = await Pipeline().run(b"%PDF", "a.pdf", "application/pdf")

        assert result.err.category == ErrorCategory.TEXT_EXTRACTION
        assert result.err.context["timeout"] is True
        # OCR still runs
        assert result.ocr_used

    @pytest.mark.asyncio
    async def test_rasterize_failure_recorded(self, pdf_text_layer, tools_present, fake_ocr_tools, mock_llm_client):
        fake_ocr_tools.raster_error = RasterizeError("pdftoppm", "broken", 1)
        result = await Pipeline(llm_client=mock_llm_client).run(b"%PDF", "a.pdf", "application/pdf")

        assert result.err.category == ErrorCategory.RASTERIZE
        assert not result.ocr_used
        # The model still sees the text layer
        assert result.llm_used

    @pytest.mark.asyncio
    async def test_image_ocr_failure_recorded(self, pdf_text_layer, tools_present, fake_ocr_tools):
        fake_ocr_tools.failing_pages = {1}
        result = await Pipeline().run(b"\x89PNG", "photo.png", "image/png")
        assert result.err.category == ErrorCategory.PAGE_OCR

    @pytest.mark.asyncio
    async def test_model_api_failure_recorded(self, pdf_text_layer, tools_absent, mock_llm_client):
        mock_llm_client.chat_complete = AsyncMock(side_effect=ConnectionError("refused"))
        result = await Pipeline(llm_client=mock_llm_client).run(b"%PDF", "a.pdf", "application/pdf")

        assert result.err.category == ErrorCategory.LLM_API
        assert result.hints is None
        assert not result.llm_used
        assert result.extracted_text

    @pytest.mark.asyncio
    async def test_invalid_reply_recorded(self, pdf_text_layer, tools_absent, mock_llm_client):
        mock_llm_client.chat_complete = AsyncMock(return_value="I could not find anything")
        result = await Pipeline(llm_client=mock_llm_client).run(b"%PDF", "a.pdf", "application/pdf")

        assert result.err.category == ErrorCategory.LLM_PARSE
        assert result.err.context["raw_response"] == "I could not find anything"
        assert result.hints is None
        assert not result.llm_used

    @pytest.mark.asyncio
    async def test_unicode_digit_amount_does_not_raise(self, pdf_text_layer, tools_absent, mock_llm_client):
        """A superscript amount is dropped and the run still completes."""
        mock_llm_client.chat_complete = AsyncMock(return_value='{"total_cents": "\u00b2", "summary": "ok"}')
        result = await Pipeline(llm_client=mock_llm_client).run(b"hello", "a.txt", "text/plain")

        assert result.err is None
        assert result.llm_used
        assert result.hints.total_cents is None
        assert result.hints.summary == "ok"

    @pytest.mark.asyncio
    async def test_errors_accumulate_in_order(self, pdf_text_layer, tools_present, fake_ocr_tools, mock_llm_client):
        pdf_text_layer["result"] = ToolError("pdftotext", "bad", 1)
        fake_ocr_tools.raster_error = RasterizeError("pdftoppm", "broken", 1)
        result = await Pipeline(llm_client=mock_llm_client).run(b"%PDF", "a.pdf", "application/pdf")

        categories = [e.category for e in result.errors.errors]
        assert categories == [ErrorCategory.TEXT_EXTRACTION, ErrorCategory.RASTERIZE]
        assert result.err.category == ErrorCategory.TEXT_EXTRACTION
        mock_llm_client.chat_complete.assert_not_called()


# =============================================================================
# Cancellation
# =============================================================================


class TestPipelineCancellation:
    """Tests for cancellation during a run."""

    @pytest.mark.asyncio
    async def test_cancel_during_ocr(self, pdf_text_layer, tools_present, fake_ocr_tools, mock_llm_client):
        token = CancelToken()
        fake_ocr_tools.pages = 5
        fake_ocr_tools.on_page = lambda page: token.cancel()

        result = await Pipeline(llm_client=mock_llm_client).run(b"%PDF", "a.pdf", "application/pdf", token)

        assert fake_ocr_tools.ocr_calls == [1]
        assert result.err.category == ErrorCategory.CANCELLED
        assert result.err.severity == ErrorSeverity.WARNING
        assert result.err.phase == "ocr"
        assert result.errors.error_count == 0
        assert result.extracted_text == "Invoice 42\nTotal $1,500.00"
        mock_llm_client.chat_complete.assert_not_called()
