"""Centralized configuration for the document extraction subsystem.

All defaults and tunables live here. Each constant documents:
- What it controls
- What changing it affects

Runtime overrides come from environment variables and are gathered into a
single frozen ``ExtractionSettings`` via ``ExtractionSettings.from_env()``.
"""

import os
import re
from dataclasses import dataclass
from typing import Final

from docextract.core.errors import ConfigError


# =============================================================================
# LLM Provider Configuration
# =============================================================================
#
# To switch providers, set the LLM_PROVIDER environment variable:
#   - "openrouter" (default): Uses OpenRouter API gateway
#   - "azure": Uses Azure OpenAI Service
#   - "ollama": Uses a local Ollama server (OLLAMA_API_BASE, default
#     http://localhost:11434)
#
# =============================================================================

LLM_PROVIDER: Final[str] = os.environ.get("LLM_PROVIDER", "openrouter")
"""LLM provider to use. Set via LLM_PROVIDER env var."""

API_KEY_ENV_VARS: Final[dict[str, str]] = {
    "openrouter": "OPENROUTER_API_KEY",
    "azure": "AZURE_API_KEY",
    "ollama": "",
}

API_KEY_ENV_VAR: Final[str] = API_KEY_ENV_VARS.get(LLM_PROVIDER, "OPENROUTER_API_KEY")
"""Environment variable name for the LLM API key (empty for local providers)."""


def _get_model_name(base_model: str) -> str:
    """Convert a base model name to provider-specific format."""
    if LLM_PROVIDER == "azure":
        deployment_env = f"AZURE_DEPLOYMENT_{base_model.upper().replace('-', '_').replace('.', '_')}"
        return f"azure/{os.environ.get(deployment_env, base_model)}"
    if LLM_PROVIDER == "ollama":
        return f"ollama/{base_model}"
    return f"openrouter/openai/{base_model}"


FAST_MODEL: Final[str] = _get_model_name(
    "qwen3:0.6b" if LLM_PROVIDER == "ollama" else "gpt-4o-mini"
)
"""Default extraction model.

Extraction wants a small, fast model: the reply is a single JSON object and
the prompt is dominated by the document text.
"""


# =============================================================================
# Extraction defaults
# =============================================================================


class ExtractionDefaults:
    """Defaults for the text, OCR and model layers."""

    MAX_OCR_PAGES: Final[int] = 20
    """Maximum pages to rasterize and OCR for scanned PDFs.

    Front-loaded information (totals, dates, warranty terms, maintenance
    schedules) is typically in the first pages.
    """

    TEXT_TIMEOUT_SECONDS: Final[float] = 30.0
    """Hard time bound for the PDF text-extraction tool."""

    RASTER_DPI: Final[int] = 300
    """Rasterization resolution. Lower values hurt OCR accuracy on small print."""

    EXTRACTION_ENABLED: Final[bool] = True
    """Whether model-based extraction runs when a client is configured."""


class ToolNames:
    """External programs invoked by the extraction layers."""

    TEXT_EXTRACTOR: Final[str] = "pdftotext"
    RASTERIZER: Final[str] = "pdftoppm"
    OCR_ENGINE: Final[str] = "tesseract"


class MimeTypes:
    """MIME types the extraction layers recognize."""

    PDF: Final[str] = "application/pdf"

    IMAGES: Final[frozenset[str]] = frozenset({
        "image/png",
        "image/jpeg",
        "image/tiff",
        "image/bmp",
        "image/webp",
    })
    """Raster formats the OCR engine reads directly."""


# LLM Call Configuration

class LLMConfig:
    """Default parameters for LLM API calls."""

    TEMPERATURE: Final[float] = 0.0
    """Sampling temperature. 0.0 keeps extractions reproducible."""

    RESPONSE_FORMAT: Final[dict[str, str]] = {"type": "json_object"}
    """Response format enforcing JSON output (one-shot calls only)."""


# =============================================================================
# Environment overrides
# =============================================================================

ENV_MAX_OCR_PAGES: Final[str] = "DOCEXTRACT_MAX_OCR_PAGES"
ENV_TEXT_TIMEOUT: Final[str] = "DOCEXTRACT_TEXT_TIMEOUT"
ENV_EXTRACTION_ENABLED: Final[str] = "DOCEXTRACT_EXTRACTION_ENABLED"
ENV_EXTRACTION_MODEL: Final[str] = "DOCEXTRACT_EXTRACTION_MODEL"

_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(ms|s|m|h)?\s*$")
_DURATION_UNITS: Final[dict[str, float]] = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}

_TRUE_WORDS: Final[frozenset[str]] = frozenset({"1", "true", "yes", "on"})
_FALSE_WORDS: Final[frozenset[str]] = frozenset({"0", "false", "no", "off"})


def parse_duration(value: str, name: str = "duration") -> float:
    """Parse a duration like ``"30s"``, ``"500ms"``, ``"2m"`` or ``"45"`` into seconds.

    Raises:
        ConfigError: If the value is malformed or not positive.
    """
    match = _DURATION_RE.match(value)
    if not match:
        raise ConfigError(f"{name}: invalid duration {value!r} -- use forms like \"30s\" or \"1m\"")
    seconds = float(match.group(1)) * _DURATION_UNITS[match.group(2) or "s"]
    if seconds <= 0:
        raise ConfigError(f"{name} must be positive, got {value!r}")
    return seconds


def parse_bool(value: str, name: str = "flag") -> bool:
    """Parse a boolean word. Raises ConfigError for anything unrecognized."""
    word = value.strip().lower()
    if word in _TRUE_WORDS:
        return True
    if word in _FALSE_WORDS:
        return False
    raise ConfigError(f"{name}: expected a boolean, got {value!r}")


def parse_max_pages(value: str | int, name: str = "max_ocr_pages") -> int:
    """Parse the OCR page cap. 0 selects the default; negatives are rejected."""
    try:
        pages = int(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{name}: expected an integer, got {value!r}") from e
    if pages < 0:
        raise ConfigError(f"{name} must be non-negative, got {pages}")
    return pages or ExtractionDefaults.MAX_OCR_PAGES


@dataclass(frozen=True)
class ExtractionSettings:
    """Settings consumed by the Pipeline and the ExtractionController.

    Set once at startup, never modified.
    """

    max_ocr_pages: int = ExtractionDefaults.MAX_OCR_PAGES
    text_timeout: float = ExtractionDefaults.TEXT_TIMEOUT_SECONDS
    llm_enabled: bool = ExtractionDefaults.EXTRACTION_ENABLED
    model: str = FAST_MODEL

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "ExtractionSettings":
        """Build settings from environment variables, falling back to defaults.

        Args:
            environ: Mapping to read from. Defaults to ``os.environ``.

        Raises:
            ConfigError: If any variable holds an invalid value.
        """
        env = os.environ if environ is None else environ

        max_pages = ExtractionDefaults.MAX_OCR_PAGES
        if env.get(ENV_MAX_OCR_PAGES):
            max_pages = parse_max_pages(env[ENV_MAX_OCR_PAGES], ENV_MAX_OCR_PAGES)

        timeout = ExtractionDefaults.TEXT_TIMEOUT_SECONDS
        if env.get(ENV_TEXT_TIMEOUT):
            timeout = parse_duration(env[ENV_TEXT_TIMEOUT], ENV_TEXT_TIMEOUT)

        enabled = ExtractionDefaults.EXTRACTION_ENABLED
        if env.get(ENV_EXTRACTION_ENABLED):
            enabled = parse_bool(env[ENV_EXTRACTION_ENABLED], ENV_EXTRACTION_ENABLED)

        model = env.get(ENV_EXTRACTION_MODEL, "").strip() or FAST_MODEL

        return cls(
            max_ocr_pages=max_pages,
            text_timeout=timeout,
            llm_enabled=enabled,
            model=model,
        )

    def with_overrides(
        self,
        max_ocr_pages: int | None = None,
        text_timeout: float | None = None,
        llm_enabled: bool | None = None,
        model: str | None = None,
    ) -> "ExtractionSettings":
        """Return a copy with the given fields replaced (CLI flags win over env)."""
        return ExtractionSettings(
            max_ocr_pages=self.max_ocr_pages if max_ocr_pages is None else parse_max_pages(max_ocr_pages),
            text_timeout=self.text_timeout if text_timeout is None else text_timeout,
            llm_enabled=self.llm_enabled if llm_enabled is None else llm_enabled,
            model=model or self.model,
        )
