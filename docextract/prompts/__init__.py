"""Prompt templates for model-based extraction.

The system prompt fixes the JSON output contract; the user prompt builder
assembles document metadata and text sources.
"""

from docextract.prompts.extraction_prompt import (
    EXTRACTION_PREAMBLE,
    EXTRACTION_RULES,
    EXTRACTION_SCHEMA,
    ExtractionPrompt,
    build_extraction_prompt,
    build_system_prompt,
    build_user_message,
)

__all__ = [
    "EXTRACTION_PREAMBLE",
    "EXTRACTION_RULES",
    "EXTRACTION_SCHEMA",
    "ExtractionPrompt",
    "build_extraction_prompt",
    "build_system_prompt",
    "build_user_message",
]
