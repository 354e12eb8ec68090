"""Core layers for document extraction: tools, text, OCR, model I/O, logging."""

from docextract.core.errors import (
    ConfigError,
    ToolError,
    ToolTimeoutError,
    RasterizeError,
    ExtractionCancelled,
    ResponseParseError,
    StoreError,
    ErrorSeverity,
    ErrorCategory,
    ExtractionError,
    PipelineErrors,
    text_extraction_error,
    ocr_error,
    llm_api_error,
    llm_parse_error,
    cancelled_error,
)
from docextract.core.config import (
    LLM_PROVIDER,
    API_KEY_ENV_VAR,
    API_KEY_ENV_VARS,
    FAST_MODEL,
    ExtractionDefaults,
    ExtractionSettings,
    LLMConfig,
    MimeTypes,
    ToolNames,
)
from docextract.core.cancel import CancelToken
from docextract.core.tools import (
    Capabilities,
    capabilities,
    has_pdftotext,
    has_pdftoppm,
    has_tesseract,
    ocr_available,
    image_ocr_available,
)
from docextract.core.text import extract_text, is_scanned, normalize_whitespace
from docextract.core.ocr import OCRResult, is_image_mime, ocr, text_from_tsv
from docextract.core.ocr_progress import OCRProgress, OCRProgressStream, ocr_with_progress
from docextract.core.response_parser import parse_extraction_response, strip_code_fences
from docextract.core.pipeline_logger import PipelineLogger, get_logger, reset_logger
from docextract.core.llm_client import LLMClient, StreamChunk

__all__ = [
    # Errors
    "ConfigError",
    "ToolError",
    "ToolTimeoutError",
    "RasterizeError",
    "ExtractionCancelled",
    "ResponseParseError",
    "StoreError",
    "ErrorSeverity",
    "ErrorCategory",
    "ExtractionError",
    "PipelineErrors",
    "text_extraction_error",
    "ocr_error",
    "llm_api_error",
    "llm_parse_error",
    "cancelled_error",
    # Config
    "LLM_PROVIDER",
    "API_KEY_ENV_VAR",
    "API_KEY_ENV_VARS",
    "FAST_MODEL",
    "ExtractionDefaults",
    "ExtractionSettings",
    "LLMConfig",
    "MimeTypes",
    "ToolNames",
    # Cancellation
    "CancelToken",
    # Tools
    "Capabilities",
    "capabilities",
    "has_pdftotext",
    "has_pdftoppm",
    "has_tesseract",
    "ocr_available",
    "image_ocr_available",
    # Text and OCR
    "extract_text",
    "is_scanned",
    "normalize_whitespace",
    "OCRResult",
    "is_image_mime",
    "ocr",
    "text_from_tsv",
    "OCRProgress",
    "OCRProgressStream",
    "ocr_with_progress",
    # Model I/O
    "parse_extraction_response",
    "strip_code_fences",
    "LLMClient",
    "StreamChunk",
    # Logging
    "PipelineLogger",
    "get_logger",
    "reset_logger",
]
