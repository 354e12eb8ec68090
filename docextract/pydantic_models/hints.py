"""Structured hints extracted from a document by the model.

Every field is optional and independent of the others: the model fills what
it can. Hints pre-fill a document record; nothing is saved until the user
accepts them.
"""

import datetime as dt
from enum import Enum

from pydantic import BaseModel, Field


class DocumentType(str, Enum):
    """Recognized document classifications."""

    QUOTE = "quote"
    INVOICE = "invoice"
    RECEIPT = "receipt"
    MANUAL = "manual"
    WARRANTY = "warranty"
    PERMIT = "permit"
    INSPECTION = "inspection"
    CONTRACT = "contract"
    OTHER = "other"

    def __str__(self) -> str:
        return self.value


class EntityKind(str, Enum):
    """Kinds of record a document can be linked to."""

    PROJECT = "project"
    APPLIANCE = "appliance"
    VENDOR = "vendor"
    MAINTENANCE = "maintenance"
    QUOTE = "quote"
    SERVICE_LOG = "service_log"

    def __str__(self) -> str:
        return self.value


class MaintenanceHint(BaseModel):
    """A recurring maintenance item, typically from an appliance manual."""

    name: str
    interval_months: int = Field(gt=0)


class EntityContext(BaseModel):
    """Existing entity names so the model can reuse exact matches."""

    vendors: list[str] = Field(default_factory=list)
    projects: list[str] = Field(default_factory=list)
    appliances: list[str] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.vendors or self.projects or self.appliances)


class ExtractionHints(BaseModel):
    """Model-suggested field values awaiting user acceptance.

    Money is always in the smallest currency unit (cents). An absent field is
    None (or "" / [] for text and lists); a zero amount is never reported.
    """

    document_type: DocumentType | None = None
    title_suggestion: str = ""
    summary: str = ""
    vendor_hint: str = ""
    total_cents: int | None = None
    labor_cents: int | None = None
    materials_cents: int | None = None
    date: dt.date | None = None
    warranty_expiry: dt.date | None = None
    entity_kind_hint: EntityKind | None = None
    entity_name_hint: str = ""
    maintenance_items: list[MaintenanceHint] = Field(default_factory=list)
    notes: str = ""
