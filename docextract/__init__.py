"""Document extraction: text, OCR and model-derived hints for uploaded files.

Given a PDF, image or plain-text file, produce best-effort text, OCR text
for scanned content, and structured hints (document type, vendor, totals,
dates, linked entities, maintenance schedules). Missing external tools and
partial failures degrade the result instead of failing it.

Architecture:
    core/             - tool checks, text/OCR layers, model client, logging, errors
    prompts/          - extraction prompt
    pydantic_models/  - hints and the raw model-reply schema
    pipeline.py       - batch orchestrator (never raises)
    controller.py     - interactive session state machine
    runtime.py        - message loop driving the controller
    store.py          - store interface, in-memory store, hint application

Usage:
    from docextract.pipeline import Pipeline

    result = await Pipeline(llm_client=client).run(data, "invoice.pdf", "application/pdf")

CLI:
    docextract invoice.pdf
"""

__version__ = "0.1.0"
