"""Extraction prompt: system message fixing the JSON contract, user message
carrying document metadata and whatever text sources exist.

When both a direct text layer and OCR text are available, both are sent
with source labels so the model can reconcile them.
"""

from dataclasses import dataclass

from docextract.pydantic_models.hints import DocumentType, EntityContext, EntityKind

EXTRACTION_PREAMBLE = """You are a document extraction assistant for a home management application. Given a document's metadata and extracted text, return a JSON object with structured fields. Fill only the fields you can confidently extract. Omit or null fields you cannot determine."""

EXTRACTION_SCHEMA = """## Output schema

Return ONLY a JSON object with these fields (all optional):

{
  "document_type": "quote|invoice|receipt|manual|warranty|permit|inspection|contract|other",
  "title_suggestion": "short descriptive title for the document",
  "summary": "one-line summary for table display",
  "vendor_hint": "vendor or company name, matched against existing vendors if possible",
  "currency_unit": "cents",
  "total_cents": 150000,
  "labor_cents": 80000,
  "materials_cents": 70000,
  "date": "2025-01-15",
  "warranty_expiry": "2027-01-15",
  "entity_kind_hint": "project|appliance|vendor|maintenance|quote|service_log",
  "entity_name_hint": "name of the related entity, matched against existing names if possible",
  "maintenance_items": [
    {"name": "Replace filter", "interval_months": 3}
  ],
  "notes": "anything else worth capturing"
}"""

EXTRACTION_RULES = f"""## Rules

1. Return ONLY valid JSON. No markdown fences, no commentary, no explanation.
2. All fields are optional. Omit fields you cannot determine. Do not guess.
3. Money values are integers. Set currency_unit to "cents" or "dollars" to say which unit they use. $1,500.00 = 150000 cents. Never use floats.
4. Dates are ISO 8601: YYYY-MM-DD.
5. For vendor_hint and entity_name_hint, prefer exact matches from the existing entities list.
6. document_type must be one of: {", ".join(t.value for t in DocumentType)}.
7. entity_kind_hint must be one of: {", ".join(k.value for k in EntityKind)}.
8. maintenance_items: extract maintenance schedules from manuals (e.g. "replace filter every 3 months").
9. Keep title_suggestion concise (under 60 characters).
10. Keep summary to one sentence."""

SOURCE_PREFERENCE = """Two text sources are provided for this document.
- Prefer the PDF text layer for pages where it has content; it is exact.
- Prefer the OCR text for scanned pages the text layer missed.
- When the two disagree, use the reading that is more plausible for the document."""

PDF_TEXT_LABEL = "## Source: PDF text layer"
OCR_TEXT_LABEL = "## Source: OCR (tesseract)"


@dataclass
class ExtractionPrompt:
    """System and user messages for one extraction call."""

    system: str
    user: str

    def messages(self) -> list[dict[str, str]]:
        """Chat messages in the role/content shape the model client expects."""
        return [
            {"role": "system", "content": self.system},
            {"role": "user", "content": self.user},
        ]


def build_entities_section(entities: EntityContext | None) -> str:
    """List known entity names so the model reuses exact matches."""
    if entities is None or entities.is_empty:
        return ""

    lines = [
        "## Existing entities in the database",
        "",
        "Match extracted names against these when possible.",
        "",
    ]
    if entities.vendors:
        lines.append(f"Vendors: {', '.join(entities.vendors)}")
    if entities.projects:
        lines.append(f"Projects: {', '.join(entities.projects)}")
    if entities.appliances:
        lines.append(f"Appliances: {', '.join(entities.appliances)}")
    return "\n".join(lines)


def build_system_prompt(entities: EntityContext | None = None) -> str:
    """Build the system message: preamble, schema, rules, known entities."""
    parts = [EXTRACTION_PREAMBLE, EXTRACTION_SCHEMA, EXTRACTION_RULES]
    entities_section = build_entities_section(entities)
    if entities_section:
        parts.append(entities_section)
    return "\n\n".join(parts)


def build_user_message(
    filename: str,
    mime: str,
    size: int,
    pdf_text: str = "",
    ocr_text: str = "",
    text: str = "",
) -> str:
    """Build the user message from metadata and the available text sources.

    Args:
        filename: Original file name.
        mime: MIME type.
        size: Size in bytes.
        pdf_text: Direct PDF text layer, if any.
        ocr_text: OCR output, if any.
        text: Best available text, used when neither source above exists.

    Returns:
        Formatted user message.
    """
    header = f"Filename: {filename}\nMIME: {mime}\nSize: {size} bytes\n\n---\n\n"

    has_pdf = bool(pdf_text.strip())
    has_ocr = bool(ocr_text.strip())

    if has_pdf and has_ocr:
        body = f"""{SOURCE_PREFERENCE}

{PDF_TEXT_LABEL}

{pdf_text}

{OCR_TEXT_LABEL}

{ocr_text}"""
    elif has_pdf:
        body = pdf_text
    elif has_ocr:
        body = ocr_text
    else:
        body = text

    return header + body


def build_extraction_prompt(
    filename: str,
    mime: str,
    size: int,
    entities: EntityContext | None = None,
    pdf_text: str = "",
    ocr_text: str = "",
    text: str = "",
) -> ExtractionPrompt:
    """Build the full extraction prompt.

    Args:
        filename: Original file name.
        mime: MIME type.
        size: Size in bytes.
        entities: Known vendor/project/appliance names.
        pdf_text: Direct PDF text layer.
        ocr_text: OCR text.
        text: Fallback text when neither source exists.

    Returns:
        ExtractionPrompt with system and user messages.
    """
    return ExtractionPrompt(
        system=build_system_prompt(entities),
        user=build_user_message(filename, mime, size, pdf_text, ocr_text, text),
    )
