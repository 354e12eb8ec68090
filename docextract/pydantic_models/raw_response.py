"""Permissive schema for the model's JSON reply.

The model is asked for integers and ISO dates but routinely sends money as
"$1,500.00", intervals as "6", or a number where a string belongs. This
model accepts whatever shape arrives and leaves interpretation to
``docextract.core.response_parser``. A value of the wrong JSON type becomes
None instead of failing validation, so only a non-object reply is fatal.
"""

from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator


def _text_or_none(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def _number_or_text(value: Any) -> int | float | str | None:
    # bool is an int subclass but never a meaningful amount
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float, str)):
        return value
    return None


def _object_items(value: Any) -> list[Any] | None:
    if not isinstance(value, list):
        return None
    return [item for item in value if isinstance(item, dict)]


# Type Aliases for LLM Output

RawText = Annotated[str | None, BeforeValidator(_text_or_none)]
"""Free text; any non-string JSON value reads as absent."""

MoneyValue = Annotated[int | float | str | None, BeforeValidator(_number_or_text)]
"""Money as sent by the model: a JSON number or a string, possibly absent.

Numbers are in the declared ``currency_unit``; strings are either dollar
amounts ("$1,234.56") or bare cents ("150000").
"""

IntervalValue = Annotated[int | float | str | None, BeforeValidator(_number_or_text)]
"""Maintenance interval in months, as a JSON number or a numeric string."""


class RawMaintenanceItem(BaseModel):
    """One maintenance entry before name/interval validation."""

    name: RawText = None
    interval_months: IntervalValue = None


class RawExtractionResponse(BaseModel):
    """The model reply exactly as decoded from JSON.

    Unknown keys are ignored. Enum-valued fields stay plain strings here and
    are checked against the closed sets during conversion.
    """

    document_type: RawText = None
    title_suggestion: RawText = None
    summary: RawText = None
    vendor_hint: RawText = None

    # Money
    currency_unit: RawText = None
    total_cents: MoneyValue = None
    labor_cents: MoneyValue = None
    materials_cents: MoneyValue = None

    # Dates
    date: RawText = None
    warranty_expiry: RawText = None

    # Linking
    entity_kind_hint: RawText = None
    entity_name_hint: RawText = None

    maintenance_items: Annotated[
        list[RawMaintenanceItem] | None, BeforeValidator(_object_items)
    ] = None
    notes: RawText = None
