"""OCR with per-page progress events.

``ocr_with_progress`` starts a background task and returns a stream of
``OCRProgress`` events: one "rasterize" event once page images exist, one
"ocr" event as each page starts, and a final ``done`` event carrying the
merged text and TSV (or the error). The stream closes after the final event.

The worker checks the cancellation token before every event and before every
page; on cancellation it emits a single done event carrying the
cancellation error and stops.
"""

import asyncio
import importlib
import logging
import tempfile
from dataclasses import dataclass
from pathlib import Path

from docextract.core.cancel import CancelToken
from docextract.core.config import ExtractionDefaults
from docextract.core.errors import ToolError
from docextract.core.text import normalize_whitespace

# Bind the submodule explicitly: docextract.core re-exports the function `ocr`.
ocr = importlib.import_module("docextract.core.ocr")

logger = logging.getLogger(__name__)

PHASE_RASTERIZE = "rasterize"
PHASE_OCR = "ocr"


@dataclass
class OCRProgress:
    """One progress event from ``ocr_with_progress``."""

    phase: str = ""              # "rasterize" or "ocr"
    page: int = 0                # current page (1-indexed)
    total: int = 0               # total pages (0 until known)
    done: bool = False           # all phases finished
    text: str = ""               # accumulated text (set on done)
    tsv: str = ""                # accumulated TSV (set on done)
    error: Exception | None = None


_CLOSED = object()


class OCRProgressStream:
    """Single-consumer stream of progress events, closed by the producer."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False
        self._task: asyncio.Task | None = None

    def _put(self, progress: OCRProgress) -> None:
        self._queue.put_nowait(progress)

    def _close(self) -> None:
        self._queue.put_nowait(_CLOSED)

    async def next(self) -> OCRProgress | None:
        """Wait for the next event. Returns None once the stream is closed."""
        if self._closed:
            return None
        item = await self._queue.get()
        if item is _CLOSED:
            self._closed = True
            return None
        return item

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self):
        return self

    async def __anext__(self) -> OCRProgress:
        item = await self.next()
        if item is None:
            raise StopAsyncIteration
        return item


def ocr_with_progress(
    data: bytes,
    mime: str,
    max_pages: int = ExtractionDefaults.MAX_OCR_PAGES,
    token: CancelToken | None = None,
) -> OCRProgressStream:
    """Start OCR on a background task and return its progress stream.

    Images are OCRed directly; anything else is treated as a PDF. Must be
    called from a running event loop.
    """
    stream = OCRProgressStream()
    token = token or CancelToken()
    worker = _OCRWorker(stream, token)
    stream._task = asyncio.get_running_loop().create_task(worker.run(data, mime, max_pages))
    return stream


class _OCRWorker:
    def __init__(self, stream: OCRProgressStream, token: CancelToken):
        self.stream = stream
        self.token = token

    def send(self, progress: OCRProgress) -> None:
        """Emit a non-terminal event, honoring cancellation first."""
        self.token.check()
        self.stream._put(progress)

    def finish(self, text: str = "", tsv: str = "", error: Exception | None = None) -> None:
        self.stream._put(OCRProgress(done=True, text=text, tsv=tsv, error=error))

    async def run(self, data: bytes, mime: str, max_pages: int) -> None:
        try:
            if ocr.is_image_mime(mime):
                await self._image(data)
            else:
                await self._pdf(data, max_pages)
        except Exception as e:  # reported to the consumer as the terminal event
            logger.debug(f"OCR worker stopped: {type(e).__name__}: {e}")
            self.finish(error=e)
        finally:
            self.stream._close()

    async def _image(self, data: bytes) -> None:
        if not data:
            self.finish()
            return

        with tempfile.TemporaryDirectory(prefix="docextract-ocr-") as tmp_dir:
            image_path = Path(tmp_dir) / "input.png"
            image_path.write_bytes(data)

            self.send(OCRProgress(phase=PHASE_OCR, page=1, total=1))
            text, tsv = await ocr.ocr_page_image(image_path, self.token)

        self.finish(text=normalize_whitespace(text), tsv=tsv)

    async def _pdf(self, data: bytes, max_pages: int) -> None:
        if not data:
            self.finish()
            return
        if max_pages <= 0:
            max_pages = ExtractionDefaults.MAX_OCR_PAGES

        with tempfile.TemporaryDirectory(prefix="docextract-ocr-") as tmp_dir:
            pdf_path = Path(tmp_dir) / "input.pdf"
            pdf_path.write_bytes(data)

            images = await ocr.rasterize(pdf_path, Path(tmp_dir) / "page", max_pages, self.token)
            if not images:
                self.finish()
                return

            total = len(images)
            self.send(OCRProgress(phase=PHASE_RASTERIZE, page=total, total=total))

            text = ocr.PageTextJoiner()
            tsv = ocr.TSVMerger()
            for page_num, image in enumerate(images, start=1):
                self.token.check()
                self.send(OCRProgress(phase=PHASE_OCR, page=page_num, total=total))
                try:
                    page_text, page_tsv = await ocr.ocr_page_image(image, self.token)
                except ToolError as e:
                    logger.warning(f"OCR skipped page {page_num}/{total}: {e}")
                    continue
                text.add(page_text)
                tsv.add(page_tsv)

        self.finish(text=text.value(), tsv=tsv.value())
