"""Tests for docextract.core.config module.

Tests the centralized configuration:
- ExtractionDefaults: page cap, timeout, DPI
- Value parsers: durations, booleans, page caps
- ExtractionSettings: environment loading and CLI overrides
"""

import pytest

from docextract.core.config import (
    ENV_EXTRACTION_ENABLED,
    ENV_EXTRACTION_MODEL,
    ENV_MAX_OCR_PAGES,
    ENV_TEXT_TIMEOUT,
    FAST_MODEL,
    ExtractionDefaults,
    ExtractionSettings,
    LLMConfig,
    MimeTypes,
    parse_bool,
    parse_duration,
    parse_max_pages,
)
from docextract.core.errors import ConfigError


# =============================================================================
# Defaults
# =============================================================================


class TestExtractionDefaults:
    """Tests for default values."""

    def test_max_ocr_pages(self):
        assert ExtractionDefaults.MAX_OCR_PAGES == 20

    def test_text_timeout(self):
        assert ExtractionDefaults.TEXT_TIMEOUT_SECONDS == 30.0

    def test_raster_dpi(self):
        assert ExtractionDefaults.RASTER_DPI == 300

    def test_extraction_enabled(self):
        assert ExtractionDefaults.EXTRACTION_ENABLED is True

    def test_temperature_is_deterministic(self):
        assert LLMConfig.TEMPERATURE == 0.0

    def test_pdf_is_not_an_image(self):
        assert MimeTypes.PDF not in MimeTypes.IMAGES


# =============================================================================
# Parsers
# =============================================================================


class TestParseDuration:
    """Tests for duration strings."""

    @pytest.mark.parametrize("value,expected", [
        ("30s", 30.0),
        ("1m", 60.0),
        ("500ms", 0.5),
        ("2h", 7200.0),
        ("45", 45.0),
        (" 1.5s ", 1.5),
    ])
    def test_valid(self, value, expected):
        assert parse_duration(value) == pytest.approx(expected)

    @pytest.mark.parametrize("value", ["", "abc", "10 minutes", "-5s", "1d"])
    def test_malformed(self, value):
        with pytest.raises(ConfigError):
            parse_duration(value)

    def test_zero_rejected(self):
        with pytest.raises(ConfigError, match="positive"):
            parse_duration("0s")

    def test_error_names_the_setting(self):
        with pytest.raises(ConfigError, match=ENV_TEXT_TIMEOUT):
            parse_duration("soon", ENV_TEXT_TIMEOUT)


class TestParseBool:
    """Tests for boolean words."""

    @pytest.mark.parametrize("value", ["1", "true", "TRUE", "yes", "on", " True "])
    def test_true(self, value):
        assert parse_bool(value) is True

    @pytest.mark.parametrize("value", ["0", "false", "no", "off"])
    def test_false(self, value):
        assert parse_bool(value) is False

    def test_unrecognized(self):
        with pytest.raises(ConfigError):
            parse_bool("maybe")


class TestParseMaxPages:
    """Tests for the OCR page cap."""

    def test_positive(self):
        assert parse_max_pages("5") == 5
        assert parse_max_pages(7) == 7

    def test_zero_selects_default(self):
        assert parse_max_pages("0") == ExtractionDefaults.MAX_OCR_PAGES

    def test_negative_rejected(self):
        with pytest.raises(ConfigError):
            parse_max_pages("-1")

    def test_not_a_number(self):
        with pytest.raises(ConfigError):
            parse_max_pages("many")


# =============================================================================
# ExtractionSettings
# =============================================================================


class TestExtractionSettings:
    """Tests for settings loading."""

    def test_defaults(self):
        settings = ExtractionSettings()
        assert settings.max_ocr_pages == ExtractionDefaults.MAX_OCR_PAGES
        assert settings.text_timeout == ExtractionDefaults.TEXT_TIMEOUT_SECONDS
        assert settings.llm_enabled is True
        assert settings.model == FAST_MODEL

    def test_from_empty_env(self):
        assert ExtractionSettings.from_env({}) == ExtractionSettings()

    def test_from_env(self):
        settings = ExtractionSettings.from_env({
            ENV_MAX_OCR_PAGES: "5",
            ENV_TEXT_TIMEOUT: "1m",
            ENV_EXTRACTION_ENABLED: "false",
            ENV_EXTRACTION_MODEL: "ollama/qwen3:0.6b",
        })
        assert settings.max_ocr_pages == 5
        assert settings.text_timeout == 60.0
        assert settings.llm_enabled is False
        assert settings.model == "ollama/qwen3:0.6b"

    def test_blank_values_ignored(self):
        settings = ExtractionSettings.from_env({ENV_MAX_OCR_PAGES: "", ENV_EXTRACTION_MODEL: "  "})
        assert settings == ExtractionSettings()

    def test_invalid_env_raises(self):
        with pytest.raises(ConfigError):
            ExtractionSettings.from_env({ENV_TEXT_TIMEOUT: "forever"})

    def test_reads_os_environ(self, monkeypatch):
        monkeypatch.setenv(ENV_MAX_OCR_PAGES, "3")
        assert ExtractionSettings.from_env().max_ocr_pages == 3

    def test_frozen(self):
        settings = ExtractionSettings()
        with pytest.raises(AttributeError):
            settings.max_ocr_pages = 1

    def test_overrides_win(self):
        base = ExtractionSettings.from_env({ENV_MAX_OCR_PAGES: "5"})
        settings = base.with_overrides(max_ocr_pages=2, llm_enabled=False, model="other")
        assert settings.max_ocr_pages == 2
        assert settings.llm_enabled is False
        assert settings.model == "other"
        assert settings.text_timeout == base.text_timeout

    def test_no_overrides_keeps_values(self):
        base = ExtractionSettings(max_ocr_pages=4, text_timeout=10.0, llm_enabled=False, model="m")
        assert base.with_overrides() == base

    def test_zero_page_override_selects_default(self):
        settings = ExtractionSettings(max_ocr_pages=4).with_overrides(max_ocr_pages=0)
        assert settings.max_ocr_pages == ExtractionDefaults.MAX_OCR_PAGES
