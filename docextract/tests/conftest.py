"""Shared pytest fixtures for docextract tests."""

import importlib
import json
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from docextract.core.errors import ToolError
from docextract.core.llm_client import StreamChunk
from docextract.core.pipeline_logger import reset_logger
from docextract.core.tools import reset_tool_cache
from docextract.store import InMemoryStore

# Bind the submodule explicitly: docextract.core re-exports the function `ocr`.
ocr_module = importlib.import_module("docextract.core.ocr")

TSV_HEADER = "level\tpage_num\tblock_num\tpar_num\tline_num\tword_num\tleft\ttop\twidth\theight\tconf\ttext"


def tsv_row(block: int, par: int, line: int, word: int, text: str, level: int = 5) -> str:
    """One tesseract TSV row with dummy geometry and confidence."""
    return f"{level}\t1\t{block}\t{par}\t{line}\t{word}\t10\t10\t50\t20\t95.0\t{text}"


def page_tsv(*words: str) -> str:
    """A single-line TSV table for one page."""
    rows = [tsv_row(1, 1, 1, i, w) for i, w in enumerate(words, start=1)]
    return "\n".join([TSV_HEADER, *rows])


# =============================================================================
# Global state
# =============================================================================


@pytest.fixture(autouse=True)
def reset_global_state():
    """Forget cached tool lookups and the global logger between tests."""
    reset_tool_cache()
    reset_logger()
    yield
    reset_tool_cache()
    reset_logger()


# =============================================================================
# OCR fixtures
# =============================================================================


@pytest.fixture
def sample_tsv():
    """Two lines in one block, then a second block."""
    return "\n".join([
        TSV_HEADER,
        "1\t1\t0\t0\t0\t0\t0\t0\t800\t600\t-1\t",
        tsv_row(1, 1, 1, 1, "Hello"),
        tsv_row(1, 1, 1, 2, "world"),
        tsv_row(1, 1, 2, 1, "Second"),
        tsv_row(1, 1, 2, 2, "line"),
        tsv_row(1, 1, 2, 3, "   "),
        tsv_row(2, 1, 1, 1, "New"),
        tsv_row(2, 1, 1, 2, "block"),
    ])


class FakeOCRTools:
    """Stands in for pdftoppm and tesseract.

    Page ``n`` reads as the single word ``Page<n>``. Pages listed in
    ``failing_pages`` raise ToolError; ``raster_error`` makes rasterization
    fail; ``on_page`` is called with the page number after each OCR call.
    """

    def __init__(self):
        self.pages = 3
        self.failing_pages: set[int] = set()
        self.raster_error: Exception | None = None
        self.on_page = None
        self.rasterize_calls: list[int] = []
        self.ocr_calls: list[int] = []

    async def rasterize(self, pdf_path, output_prefix, max_pages, token=None):
        if token is not None:
            token.check()
        self.rasterize_calls.append(max_pages)
        if self.raster_error is not None:
            raise self.raster_error
        count = min(self.pages, max_pages)
        return [Path(f"{output_prefix}-{i:02d}.png") for i in range(1, count + 1)]

    async def ocr_page_image(self, image_path, token=None):
        if token is not None:
            token.check()
        stem = Path(image_path).stem
        page = int(stem.rsplit("-", 1)[1]) if "-" in stem else 1
        self.ocr_calls.append(page)
        if page in self.failing_pages:
            raise ToolError("tesseract", f"cannot read page {page}", 1)
        tsv = page_tsv(f"Page{page}")
        if self.on_page is not None:
            self.on_page(page)
        return ocr_module.text_from_tsv(tsv), tsv


@pytest.fixture
def fake_ocr_tools(monkeypatch):
    """Replace rasterization and page OCR with FakeOCRTools."""
    tools = FakeOCRTools()
    monkeypatch.setattr(ocr_module, "rasterize", tools.rasterize)
    monkeypatch.setattr(ocr_module, "ocr_page_image", tools.ocr_page_image)
    return tools


# =============================================================================
# LLM fixtures
# =============================================================================


SAMPLE_REPLY = {
    "document_type": "invoice",
    "title_suggestion": "Furnace repair invoice",
    "summary": "Furnace blower motor replacement",
    "vendor_hint": "Acme HVAC",
    "total_cents": 150000,
    "date": "2025-01-15",
    "maintenance_items": [{"name": "Replace filter", "interval_months": 3}],
}


@pytest.fixture
def sample_reply():
    """A well-formed model reply as JSON text."""
    return json.dumps(SAMPLE_REPLY)


async def stream_of(*parts: str, err: Exception | None = None):
    """Async iterator of StreamChunk values ending with a done chunk."""
    for part in parts:
        yield StreamChunk(content=part)
    yield StreamChunk(done=True, err=err)


@pytest.fixture
def mock_llm_client(sample_reply):
    """LLM client double: one-shot returns sample_reply, streaming splits it in two."""
    client = MagicMock()
    client.model = "test-model"
    client.chat_complete = AsyncMock(return_value=sample_reply)
    half = len(sample_reply) // 2
    client.chat_stream = AsyncMock(
        side_effect=lambda messages: stream_of(sample_reply[:half], sample_reply[half:])
    )
    return client


# =============================================================================
# Store fixtures
# =============================================================================


@pytest.fixture
def store(tmp_path):
    """In-memory store with a few known entities."""
    return InMemoryStore(
        vendors=["Acme HVAC", "Bob's Plumbing"],
        projects=["Kitchen remodel"],
        appliances=["Furnace"],
        cache_dir=tmp_path,
    )


@pytest.fixture
def make_stream():
    """Factory for fake model streams: make_stream("a", "b", err=None)."""
    return stream_of


@pytest.fixture
def make_page_tsv():
    """Factory for one-line page TSV tables."""
    return page_tsv
