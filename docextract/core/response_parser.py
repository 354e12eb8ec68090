"""Turn the model's reply into ExtractionHints.

The reply is tolerated in the shapes models actually produce:
- Wrapped in a markdown code fence
- Money as integer cents, as numbers in a declared "dollars" unit, or as
  strings like "$1,500.00" / "150000"
- Dates in ISO, US slash, or long month-name form
- Unknown enum values and malformed maintenance entries

Only a reply that is not a JSON object fails the parse; everything else
degrades field by field.
"""

import json
import logging
import math
import re
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Final

from pydantic import ValidationError

from docextract.core.errors import ResponseParseError
from docextract.pydantic_models.hints import (
    DocumentType,
    EntityKind,
    ExtractionHints,
    MaintenanceHint,
)
from docextract.pydantic_models.raw_response import (
    IntervalValue,
    MoneyValue,
    RawExtractionResponse,
)

logger = logging.getLogger(__name__)

FENCE: Final[str] = "```"

# "$1,234.56", "1,234.56", "1234.56"
DOLLAR_PATTERN: Final[re.Pattern] = re.compile(r"^\$?([\d,]+)\.(\d{2})$", re.ASCII)

CENTS_PATTERN: Final[re.Pattern] = re.compile(r"^\d+$", re.ASCII)

DOLLAR_UNITS: Final[frozenset[str]] = frozenset({"dollars", "dollar", "usd"})

DATE_FORMATS: Final[tuple[str, ...]] = (
    "%Y-%m-%d",        # ISO 8601
    "%m/%d/%Y",        # US, with or without leading zeros
    "%B %d, %Y",       # January 15, 2025
    "%b %d, %Y",       # Jan 15, 2025
    "%Y-%m-%dT%H:%M",  # datetime without seconds
)


def strip_code_fences(raw: str) -> str:
    """Remove a markdown code fence wrapped around the reply.

    Drops the opening fence line (including any language tag) and the last
    line that is exactly a closing fence. Text without a leading fence is
    only trimmed.
    """
    text = raw.strip()
    if not text.startswith(FENCE):
        return text

    lines = text.split("\n")[1:]
    for i in range(len(lines) - 1, -1, -1):
        if lines[i].strip() == FENCE:
            lines = lines[:i]
            break
    return "\n".join(lines).strip()


def _round_half_away(value: Decimal) -> int:
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def _cents_from_string(text: str) -> int | None:
    text = text.strip()
    if not text:
        return None

    try:
        match = DOLLAR_PATTERN.match(text)
        if match:
            whole = match.group(1).replace(",", "")
            if not whole:
                return None
            return int(whole) * 100 + int(match.group(2))

        # Bare integer, already in cents
        if CENTS_PATTERN.match(text):
            cents = int(text)
            return cents if cents > 0 else None
    except ValueError:
        # int() refuses digit strings past sys.get_int_max_str_digits()
        logger.debug(f"Unparseable money string: {text[:40]!r}")
    return None


def parse_cents(value: MoneyValue, unit: str | None = None) -> int | None:
    """Resolve a money value to integer cents.

    Args:
        value: Number or string from the reply.
        unit: Declared ``currency_unit``. "dollars" scales numbers by 100;
            absent or "cents" uses numbers as they are. Strings ignore it.

    Returns:
        Cents, or None when absent, unparseable, or zero.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, str):
        cents = _cents_from_string(value)
    else:
        if isinstance(value, float) and not math.isfinite(value):
            return None
        amount = Decimal(str(value))
        if unit is not None and unit.strip().lower() in DOLLAR_UNITS:
            amount *= 100
        cents = _round_half_away(amount)

    return cents or None


def parse_date(value: str | None) -> date | None:
    """Try each known layout in order and return the first match."""
    if not value:
        return None
    text = value.strip()
    if not text:
        return None
    for layout in DATE_FORMATS:
        try:
            return datetime.strptime(text, layout).date()
        except ValueError:
            continue
    return None


def parse_positive_int(value: IntervalValue) -> int:
    """Read a positive integer from a number or numeric string, else 0."""
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, str):
        try:
            n = int(value.strip())
        except ValueError:
            return 0
    elif isinstance(value, float):
        if not math.isfinite(value):
            return 0
        n = _round_half_away(Decimal(str(value)))
    else:
        n = value
    return n if n > 0 else 0


def _document_type(value: str | None) -> DocumentType | None:
    if not value:
        return None
    try:
        return DocumentType(value.strip().lower())
    except ValueError:
        logger.debug(f"Dropping unknown document_type: {value!r}")
        return None


def _entity_kind(value: str | None) -> EntityKind | None:
    if not value:
        return None
    try:
        return EntityKind(value.strip().lower())
    except ValueError:
        logger.debug(f"Dropping unknown entity_kind_hint: {value!r}")
        return None


def _text(value: str | None) -> str:
    return value.strip() if value else ""


def parse_extraction_response(raw: str) -> ExtractionHints:
    """Parse the model's reply into hints.

    Args:
        raw: Reply text, possibly fenced.

    Returns:
        ExtractionHints with every field that could be interpreted.

    Raises:
        ResponseParseError: The cleaned reply is not a JSON object.
    """
    cleaned = strip_code_fences(raw)
    try:
        data = json.loads(cleaned)
    except (ValueError, RecursionError) as e:
        # JSONDecodeError, over-long integers, runaway nesting
        raise ResponseParseError(str(e) or type(e).__name__, raw=raw) from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ResponseParseError(f"expected a JSON object, got {type(data).__name__}", raw=raw)

    try:
        resp = RawExtractionResponse.model_validate(data)
    except ValidationError as e:
        raise ResponseParseError(str(e), raw=raw) from e

    maintenance: list[MaintenanceHint] = []
    for item in resp.maintenance_items or []:
        name = _text(item.name)
        months = parse_positive_int(item.interval_months)
        if not name or months <= 0:
            continue
        maintenance.append(MaintenanceHint(name=name, interval_months=months))

    unit = resp.currency_unit
    return ExtractionHints(
        document_type=_document_type(resp.document_type),
        title_suggestion=_text(resp.title_suggestion),
        summary=_text(resp.summary),
        vendor_hint=_text(resp.vendor_hint),
        total_cents=parse_cents(resp.total_cents, unit),
        labor_cents=parse_cents(resp.labor_cents, unit),
        materials_cents=parse_cents(resp.materials_cents, unit),
        date=parse_date(resp.date),
        warranty_expiry=parse_date(resp.warranty_expiry),
        entity_kind_hint=_entity_kind(resp.entity_kind_hint),
        entity_name_hint=_text(resp.entity_name_hint),
        maintenance_items=maintenance,
        notes=_text(resp.notes),
    )
