"""Error types for the extraction subsystem.

Two kinds live here:
- Exceptions raised by the layers (tool failures, cancellation, malformed
  model replies, store failures, bad settings).
- Structured ``ExtractionError`` records that orchestrators keep as data so
  a document can still be saved with whatever partial results exist.

Tool absence is not an error anywhere: layers degrade to empty output.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


# =============================================================================
# Exceptions
# =============================================================================


class ConfigError(ValueError):
    """Raised when a setting holds an invalid value."""


class ToolError(Exception):
    """An external program exited unsuccessfully."""

    def __init__(self, tool: str, stderr: str = "", returncode: int | None = None):
        self.tool = tool
        self.stderr = stderr.strip()
        self.returncode = returncode
        detail = self.stderr or f"exit status {returncode}"
        super().__init__(f"{tool}: {detail}")


class ToolTimeoutError(ToolError):
    """An external program exceeded its time bound and was killed."""

    def __init__(self, tool: str, timeout: float):
        self.timeout = timeout
        super().__init__(tool, f"timed out after {timeout:g}s")


class RasterizeError(ToolError):
    """The PDF rasterizer failed. Fatal to the OCR step only."""


class ExtractionCancelled(Exception):
    """The cancellation token fired while work was in progress."""

    def __init__(self, message: str = "extraction cancelled"):
        super().__init__(message)


class ResponseParseError(ValueError):
    """The model reply could not be decoded as a JSON object."""

    def __init__(self, message: str, raw: str = ""):
        self.raw = raw
        super().__init__(f"parse extraction json: {message}")


class StoreError(Exception):
    """The document store collaborator failed."""


# =============================================================================
# Structured error records
# =============================================================================


class ErrorSeverity(Enum):
    """Severity levels for extraction errors."""
    WARNING = "warning"   # Non-fatal, nothing lost (e.g. cancellation)
    ERROR = "error"       # Layer failed, remaining layers continued
    CRITICAL = "critical" # Nothing could be produced


class ErrorCategory(Enum):
    """Categories of extraction errors."""
    TEXT_EXTRACTION = "text_extraction"  # Text tool present but failed / timed out
    RASTERIZE = "rasterize"              # PDF page rasterization failed
    PAGE_OCR = "page_ocr"                # OCR of a page or image failed
    LLM_API = "llm_api"                  # Model transport / stream errors
    LLM_PARSE = "llm_parse"              # Model reply was not valid JSON
    CANCELLED = "cancelled"              # User-initiated cancellation
    STORE = "store"                      # Store collaborator failure
    UNKNOWN = "unknown"                  # Unclassified errors


@dataclass
class ExtractionError:
    """Structured extraction error with context."""

    category: ErrorCategory
    severity: ErrorSeverity
    message: str
    phase: str                     # Layer where the error occurred: text, ocr, llm
    filename: str | None = None
    original_error: Exception | None = None
    context: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        parts = [f"[{self.severity.value.upper()}] {self.category.value}: {self.message}"]
        if self.filename:
            parts.append(f"file={self.filename}")
        if self.phase:
            parts.append(f"phase={self.phase}")
        return " | ".join(parts)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "category": self.category.value,
            "severity": self.severity.value,
            "message": self.message,
            "phase": self.phase,
            "filename": self.filename,
            "context": self.context,
        }


@dataclass
class PipelineErrors:
    """Aggregate errors across one extraction run."""

    errors: list[ExtractionError] = field(default_factory=list)
    warnings: list[ExtractionError] = field(default_factory=list)

    def add(self, error: ExtractionError):
        """Add an error or warning."""
        if error.severity == ErrorSeverity.WARNING:
            self.warnings.append(error)
        else:
            self.errors.append(error)

    @property
    def error_count(self) -> int:
        return len(self.errors)

    @property
    def warning_count(self) -> int:
        return len(self.warnings)

    def has_category(self, category: ErrorCategory) -> bool:
        """True if any error or warning belongs to the category."""
        return any(e.category == category for e in self.errors + self.warnings)

    def summary(self) -> dict:
        """Get summary statistics."""
        by_category: dict[str, int] = {}
        for error in self.errors:
            cat = error.category.value
            by_category[cat] = by_category.get(cat, 0) + 1

        return {
            "total_errors": self.error_count,
            "total_warnings": self.warning_count,
            "errors_by_category": by_category,
        }

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "errors": [e.to_dict() for e in self.errors],
            "warnings": [w.to_dict() for w in self.warnings],
            "summary": self.summary(),
        }


# Factory functions for common error types

def text_extraction_error(
    message: str,
    filename: str | None = None,
    original: Exception | None = None,
) -> ExtractionError:
    """Create a text-extraction error (tool present but failed or timed out)."""
    return ExtractionError(
        category=ErrorCategory.TEXT_EXTRACTION,
        severity=ErrorSeverity.ERROR,
        message=message,
        phase="text",
        filename=filename,
        original_error=original,
        context={"timeout": isinstance(original, ToolTimeoutError)},
    )


def ocr_error(
    message: str,
    filename: str | None = None,
    original: Exception | None = None,
) -> ExtractionError:
    """Create an OCR error, categorized by whether rasterization failed."""
    category = ErrorCategory.RASTERIZE if isinstance(original, RasterizeError) else ErrorCategory.PAGE_OCR
    return ExtractionError(
        category=category,
        severity=ErrorSeverity.ERROR,
        message=message,
        phase="ocr",
        filename=filename,
        original_error=original,
    )


def llm_api_error(
    message: str,
    filename: str | None = None,
    original: Exception | None = None,
) -> ExtractionError:
    """Create an LLM transport error."""
    return ExtractionError(
        category=ErrorCategory.LLM_API,
        severity=ErrorSeverity.ERROR,
        message=message,
        phase="llm",
        filename=filename,
        original_error=original,
    )


def llm_parse_error(
    message: str,
    filename: str | None = None,
    raw_response: str | None = None,
) -> ExtractionError:
    """Create an LLM parse error. Keeps the head of the raw reply for debugging."""
    return ExtractionError(
        category=ErrorCategory.LLM_PARSE,
        severity=ErrorSeverity.ERROR,
        message=message,
        phase="llm",
        filename=filename,
        context={"raw_response": raw_response[:500] if raw_response else None},
    )


def cancelled_error(phase: str, filename: str | None = None) -> ExtractionError:
    """Create a cancellation record. Cancellation is a warning, not a failure."""
    return ExtractionError(
        category=ErrorCategory.CANCELLED,
        severity=ErrorSeverity.WARNING,
        message="extraction cancelled",
        phase=phase,
        filename=filename,
    )
