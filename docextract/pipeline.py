"""Batch extraction pipeline: text layer, then OCR, then the model.

Each layer is independent and degrades when its dependencies are missing:
no pdftotext means no text layer, no tesseract means no OCR, no model
client means no hints. ``Pipeline.run`` never raises; every failure becomes
an ExtractionError on the returned result so the caller can save whatever
text and hints were produced.

High-level flow:
  text (pdftotext / plain text) -> OCR (PDFs and images) -> LLM (one-shot)
"""

from dataclasses import dataclass, field
from typing import Any

from docextract.core.cancel import CancelToken
from docextract.core.config import ExtractionSettings
from docextract.core.errors import (
    ExtractionCancelled,
    ExtractionError,
    PipelineErrors,
    ResponseParseError,
    cancelled_error,
    llm_api_error,
    llm_parse_error,
    ocr_error,
    text_extraction_error,
)
from docextract.core.llm_client import LLMClient
from docextract.core.ocr import is_image_mime, ocr
from docextract.core.pipeline_logger import PipelineLogger, get_logger
from docextract.core.response_parser import parse_extraction_response
from docextract.core.text import extract_text, is_pdf
from docextract.core.tools import image_ocr_available, ocr_available
from docextract.prompts import build_extraction_prompt
from docextract.pydantic_models.hints import EntityContext, ExtractionHints


@dataclass
class PipelineResult:
    """Output of one pipeline run.

    Attributes:
        extracted_text: Best available text (text layer, or OCR for images).
        pdf_text: Raw text-layer output (PDFs only).
        ocr_text: Raw OCR output (scanned PDFs and images).
        ocr_tsv: Merged OCR token table.
        hints: Parsed model hints; None if the model was skipped or failed.
        ocr_used: OCR produced text.
        llm_used: The model replied with parseable hints.
        errors: Every non-fatal failure, in the order it happened.
    """

    extracted_text: str = ""
    pdf_text: str = ""
    ocr_text: str = ""
    ocr_tsv: str = ""
    hints: ExtractionHints | None = None
    ocr_used: bool = False
    llm_used: bool = False
    errors: PipelineErrors = field(default_factory=PipelineErrors)

    @property
    def err(self) -> ExtractionError | None:
        """The first recorded failure, or None. Cancellation counts."""
        if self.errors.errors:
            return self.errors.errors[0]
        if self.errors.warnings:
            return self.errors.warnings[0]
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "extracted_text": self.extracted_text,
            "pdf_text": self.pdf_text,
            "ocr_text": self.ocr_text,
            "ocr_tsv": self.ocr_tsv,
            "hints": self.hints.model_dump(mode="json") if self.hints else None,
            "ocr_used": self.ocr_used,
            "llm_used": self.llm_used,
            "err": str(self.err) if self.err else None,
            "errors": self.errors.to_dict(),
        }


class Pipeline:
    """Runs the three extraction layers on one document."""

    def __init__(
        self,
        llm_client: LLMClient | None = None,
        settings: ExtractionSettings | None = None,
        entity_context: EntityContext | None = None,
        logger: PipelineLogger | None = None,
    ):
        """Initialize the pipeline.

        Args:
            llm_client: Model client. None skips the model layer.
            settings: Page cap, text timeout, model toggle. Defaults apply
                when None.
            entity_context: Known entity names for the prompt.
            logger: Pipeline logger. Defaults to the global one.
        """
        self.llm_client = llm_client
        self.settings = settings or ExtractionSettings()
        self.entity_context = entity_context or EntityContext()
        self.logger = logger or get_logger()

    @property
    def llm_enabled(self) -> bool:
        return self.llm_client is not None and self.settings.llm_enabled

    async def run(
        self,
        data: bytes,
        filename: str,
        mime: str,
        token: CancelToken | None = None,
    ) -> PipelineResult:
        """Run every applicable layer and collect what they produce.

        Args:
            data: Raw document bytes.
            filename: Original file name (for the prompt and error records).
            mime: MIME type.
            token: Optional cancellation token. Cancellation stops the run and
                is recorded as a warning.

        Returns:
            PipelineResult; never raises.
        """
        result = PipelineResult()
        if not data:
            return result

        self.logger.start_pipeline(filename)
        phase = "text"
        try:
            await self._text_layer(result, data, filename, mime, token)
            if is_pdf(mime) or is_image_mime(mime):
                phase = "ocr"
                await self._ocr_layer(result, data, filename, mime, token)
            if self.llm_enabled and (result.pdf_text or result.ocr_text or result.extracted_text):
                phase = "llm"
                await self._llm_layer(result, data, filename, mime)
        except ExtractionCancelled:
            self.logger.warning("Extraction cancelled", file=filename, phase=phase)
            result.errors.add(cancelled_error(phase, filename))

        self.logger.end_pipeline(
            success=result.errors.error_count == 0,
            stats={"ocr_used": result.ocr_used, "llm_used": result.llm_used, **result.errors.summary()},
        )
        return result

    async def _text_layer(
        self,
        result: PipelineResult,
        data: bytes,
        filename: str,
        mime: str,
        token: CancelToken | None,
    ) -> None:
        self.logger.start_phase("text", mime)
        try:
            text = await extract_text(data, mime, self.settings.text_timeout, token)
        except ExtractionCancelled:
            raise
        except Exception as e:
            self.logger.error("Text extraction failed", exc=e)
            result.errors.add(text_extraction_error(f"text extraction: {e}", filename, e))
            return

        result.extracted_text = text
        if is_pdf(mime):
            result.pdf_text = text
        self.logger.phase_result("text layer", chars=len(text))

    async def _ocr_layer(
        self,
        result: PipelineResult,
        data: bytes,
        filename: str,
        mime: str,
        token: CancelToken | None,
    ) -> None:
        available = ocr_available() if is_pdf(mime) else image_ocr_available()
        if not available:
            self.logger.debug("OCR tools not installed, skipping OCR", mime=mime)
            return

        self.logger.start_phase("ocr", "tesseract")
        try:
            output = await ocr(data, mime, self.settings.max_ocr_pages, token)
        except ExtractionCancelled:
            raise
        except Exception as e:
            self.logger.error("OCR failed", exc=e)
            result.errors.add(ocr_error(f"ocr: {e}", filename, e))
            return

        if output.text:
            result.ocr_text = output.text
            result.ocr_tsv = output.tsv
            result.ocr_used = True
            # Images have no text layer; OCR is the only source
            if not result.extracted_text:
                result.extracted_text = output.text
        self.logger.phase_result("ocr", chars=len(output.text))

    async def _llm_layer(
        self,
        result: PipelineResult,
        data: bytes,
        filename: str,
        mime: str,
    ) -> None:
        self.logger.start_phase("llm", self.llm_client.model)
        prompt = build_extraction_prompt(
            filename=filename,
            mime=mime,
            size=len(data),
            entities=self.entity_context,
            pdf_text=result.pdf_text,
            ocr_text=result.ocr_text,
            text=result.extracted_text,
        )

        try:
            raw = await self.llm_client.chat_complete(prompt.messages())
        except Exception as e:
            self.logger.error("LLM call failed", exc=e)
            result.errors.add(llm_api_error(f"llm chat: {e}", filename, e))
            return

        try:
            hints = parse_extraction_response(raw)
        except ResponseParseError as e:
            self.logger.error("LLM reply was not valid JSON", exc=e)
            result.errors.add(llm_parse_error(f"parse llm response: {e}", filename, raw))
            return

        result.hints = hints
        result.llm_used = True
        self.logger.phase_result(
            "hints",
            document_type=hints.document_type.value if hints.document_type else "-",
            maintenance_items=len(hints.maintenance_items),
        )
