"""Pydantic models for document extraction.

Modules:
- hints: ExtractionHints and its enums, MaintenanceHint, EntityContext
- raw_response: RawExtractionResponse, the permissive shape of the model reply
"""

from docextract.pydantic_models.hints import (
    DocumentType,
    EntityContext,
    EntityKind,
    ExtractionHints,
    MaintenanceHint,
)
from docextract.pydantic_models.raw_response import (
    IntervalValue,
    MoneyValue,
    RawExtractionResponse,
    RawMaintenanceItem,
    RawText,
)

__all__ = [
    # Hints
    "DocumentType",
    "EntityContext",
    "EntityKind",
    "ExtractionHints",
    "MaintenanceHint",
    # Raw model reply
    "IntervalValue",
    "MoneyValue",
    "RawExtractionResponse",
    "RawMaintenanceItem",
    "RawText",
]
