"""Interactive extraction sessions.

An ``ExtractionController`` owns at most one session: a document being
extracted step by step (text, OCR, LLM) while the user watches, followed by
an explicit accept, discard, or LLM rerun. Results are held in the session
and reach the store only on accept.

Handlers never block. Background work (OCR progress, model tokens) is
returned as a ``Cmd`` for the runtime to await; each command yields one
message tagged with the session's cancellation token, and messages whose
token is not the live session's are ignored.

Step lifecycle: pending -> running -> done | failed, plus done -> running
for the LLM step on rerun.
"""

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from enum import Enum, IntEnum

from docextract.core.cancel import CancelToken
from docextract.core.config import ExtractionSettings, MimeTypes
from docextract.core.errors import ExtractionCancelled, ResponseParseError, StoreError, ToolError
from docextract.core.llm_client import LLMClient, StreamChunk
from docextract.core.ocr import is_image_mime
from docextract.core.ocr_progress import (
    PHASE_OCR,
    PHASE_RASTERIZE,
    OCRProgress,
    OCRProgressStream,
    ocr_with_progress,
)
from docextract.core.response_parser import parse_extraction_response, strip_code_fences
from docextract.core.text import extract_text, is_pdf
from docextract.core.tools import Capabilities, capabilities
from docextract.prompts import build_extraction_prompt
from docextract.pydantic_models.hints import ExtractionHints
from docextract.runtime import Cmd
from docextract.store import DocumentStore, apply_hints, entity_context

logger = logging.getLogger(__name__)


# =============================================================================
# Session state
# =============================================================================


class Step(IntEnum):
    TEXT = 0
    OCR = 1
    LLM = 2

    @property
    def label(self) -> str:
        return self.name.lower()


class StepStatus(Enum):
    PENDING = "pending"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"


STATUS_GLYPHS = {
    StepStatus.PENDING: "  ",
    StepStatus.RUNNING: "..",
    StepStatus.DONE: "ok",
    StepStatus.FAILED: "xx",
}


@dataclass
class StepInfo:
    """Progress of one step."""

    status: StepStatus = StepStatus.PENDING
    detail: str = ""          # tool or model, e.g. "pdf", "tesseract", "page 2/5"
    metric: str = ""          # measurement, e.g. "68 chars"
    logs: list[str] = field(default_factory=list)
    elapsed: float = 0.0      # seconds, set when the step finishes
    started: float | None = None


@dataclass
class ExtractionState:
    """One open extraction session."""

    doc_id: int
    filename: str
    token: CancelToken
    mime: str = ""
    file_data: bytes = b""
    max_ocr_pages: int = 0

    steps: dict[Step, StepInfo] = field(default_factory=lambda: {s: StepInfo() for s in Step})
    has_text: bool = False
    has_ocr: bool = False
    has_llm: bool = False
    done: bool = False
    has_error: bool = False

    # Text sources, kept separate so the prompt can label them
    pdf_text: str = ""
    extracted_text: str = ""

    # Streams for the wait-for-next-unit commands
    ocr_stream: OCRProgressStream | None = None
    llm_stream: AsyncIterator[StreamChunk] | None = None
    llm_accum: list[str] = field(default_factory=list)

    # Results held until accept
    ocr_text: str = ""
    ocr_tsv: str = ""
    hints: ExtractionHints | None = None
    accepted: bool = False

    # UI state
    cursor: int = 0
    expanded: dict[Step, bool] = field(default_factory=dict)

    def active_steps(self) -> list[Step]:
        """Steps that apply to this document, in order."""
        applies = {Step.TEXT: self.has_text, Step.OCR: self.has_ocr, Step.LLM: self.has_llm}
        return [s for s in Step if applies[s]]

    def cursor_step(self) -> Step:
        active = self.active_steps()
        if 0 <= self.cursor < len(active):
            return active[self.cursor]
        return Step.TEXT

    @property
    def any_failed(self) -> bool:
        return any(self.steps[s].status == StepStatus.FAILED for s in self.active_steps())

    @property
    def can_accept(self) -> bool:
        return self.done and not self.accepted and not self.has_error and not self.any_failed


# =============================================================================
# Messages
# =============================================================================


@dataclass
class OCRProgressMsg:
    """One OCR progress event for the session owning ``token``."""

    token: CancelToken
    progress: OCRProgress


@dataclass
class LLMStartedMsg:
    """The model stream is open."""

    token: CancelToken
    stream: AsyncIterator[StreamChunk]


@dataclass
class LLMChunkMsg:
    """One model token (or the end of the stream)."""

    token: CancelToken
    content: str = ""
    done: bool = False
    err: Exception | None = None


@dataclass
class KeyMsg:
    """A key press while the overlay is shown."""

    key: str


# =============================================================================
# Commands
# =============================================================================


def wait_for_ocr_progress(token: CancelToken, stream: OCRProgressStream) -> Cmd:
    """Command yielding the next OCR event.

    A closed stream reads as done; a failing read becomes an error event.
    """

    async def wait() -> OCRProgressMsg | None:
        try:
            progress = await token.guard(stream.next())
        except ExtractionCancelled:
            return None
        except Exception as e:
            return OCRProgressMsg(token=token, progress=OCRProgress(done=True, error=e))
        if progress is None:
            progress = OCRProgress(done=True)
        return OCRProgressMsg(token=token, progress=progress)

    return wait


_closing: set[asyncio.Task] = set()


def close_stream_soon(stream) -> None:
    """Schedule ``stream.aclose()`` on the running loop, when there is one."""
    aclose = getattr(stream, "aclose", None)
    if aclose is None:
        return
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        return
    task = loop.create_task(aclose())
    _closing.add(task)
    task.add_done_callback(_stream_closed)


def _stream_closed(task: asyncio.Task) -> None:
    _closing.discard(task)
    if not task.cancelled() and task.exception() is not None:
        logger.debug(f"Closing model stream failed: {task.exception()!r}")


def wait_for_llm_chunk(token: CancelToken, stream: AsyncIterator[StreamChunk]) -> Cmd:
    """Command yielding the next model token.

    An exhausted stream reads as done; a raising stream ends with its error.
    """

    async def wait() -> LLMChunkMsg | None:
        try:
            chunk = await token.guard(anext(stream, None))
        except ExtractionCancelled:
            return None
        except Exception as e:
            return LLMChunkMsg(token=token, done=True, err=e)
        if chunk is None:
            return LLMChunkMsg(token=token, done=True)
        return LLMChunkMsg(token=token, content=chunk.content, done=chunk.done, err=chunk.err)

    return wait


# =============================================================================
# Controller
# =============================================================================


class ExtractionController:
    """Owns the single live extraction session.

    Usage:
        controller = ExtractionController(store, llm_client, settings)
        cmd = controller.open(doc.id, doc.file_name, data, mime, text)
        await drive(controller.handle, cmd)
        controller.accept()
    """

    def __init__(
        self,
        store: DocumentStore | None = None,
        llm_client: LLMClient | None = None,
        settings: ExtractionSettings | None = None,
        caps: Capabilities | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the controller.

        Args:
            store: Store receiving accepted results. None skips persistence.
            llm_client: Model client. None (or extraction disabled in
                settings) means sessions have no LLM step.
            settings: Page cap, timeout, model toggle.
            caps: Tool capabilities. Defaults to the process-wide record.
            clock: Monotonic time source for elapsed times.
        """
        self.store = store
        self.settings = settings or ExtractionSettings()
        self._llm_client = llm_client
        self._caps = caps
        self._clock = clock
        self.state: ExtractionState | None = None
        self.status_error: str = ""

    @property
    def caps(self) -> Capabilities:
        if self._caps is None:
            self._caps = capabilities()
        return self._caps

    @property
    def llm_client(self) -> LLMClient | None:
        if not self.settings.llm_enabled:
            return None
        return self._llm_client

    def model_label(self) -> str:
        """Name shown as the LLM step's detail."""
        client = self.llm_client
        if client is not None and client.model:
            return client.model
        return self.settings.model

    # -------------------------------------------------------------------------
    # Session lifecycle
    # -------------------------------------------------------------------------

    def open(
        self,
        doc_id: int,
        filename: str,
        data: bytes,
        mime: str,
        extracted_text: str = "",
    ) -> Cmd | None:
        """Open a session and start its first async step.

        Any session already open is cancelled and replaced. When neither OCR
        nor the model applies, no session is created and None is returned.

        Returns:
            Command for the first async step, or None.
        """
        needs_ocr = (is_pdf(mime) and self.caps.pdf_ocr) or (is_image_mime(mime) and self.caps.image_ocr)
        needs_llm = self.llm_client is not None

        self.cancel()
        if not needs_ocr and not needs_llm:
            logger.debug(f"No async extraction steps apply to {filename} ({mime})")
            return None

        state = ExtractionState(
            doc_id=doc_id,
            filename=filename,
            token=CancelToken(),
            mime=mime,
            file_data=data,
            max_ocr_pages=self.settings.max_ocr_pages,
            has_text=not is_image_mime(mime),
            has_ocr=needs_ocr,
            has_llm=needs_llm,
            pdf_text=extracted_text if is_pdf(mime) else "",
            extracted_text=extracted_text,
        )
        if state.has_text:
            state.steps[Step.TEXT] = _text_step(mime, extracted_text)
        self.state = state
        self.status_error = ""

        if needs_ocr:
            self._start_step(Step.OCR)
            return self._ocr_cmd()
        return self._start_llm()

    async def open_document(self, doc_id: int) -> Cmd | None:
        """Open a session for a stored document.

        Loads the record and a cached copy of its bytes. Stored text is used
        for the text step; when there is none the text layer is extracted now.

        Raises:
            StoreError: The store has no such document or cannot read it.
        """
        if self.store is None:
            raise StoreError("no document store configured")
        doc = self.store.get_document(doc_id)
        data = self.store.extract_cached_copy(doc_id).read_bytes()

        text = doc.extracted_text
        if not text:
            try:
                text = await extract_text(data, doc.mime_type, self.settings.text_timeout)
            except ToolError as e:
                logger.warning(f"Text extraction failed for {doc.file_name}: {e}")
                text = ""
        return self.open(doc.id, doc.file_name, data, doc.mime_type, text)

    def cancel(self) -> None:
        """Stop background work and drop the session and its held results."""
        if self.state is None:
            return
        self.state.token.cancel()
        if self.state.llm_stream is not None:
            close_stream_soon(self.state.llm_stream)
        self.state = None

    discard = cancel

    def accept(self) -> bool:
        """Persist held results and close the session.

        Only a complete session with no failed step can be accepted. A store
        failure keeps the session open and sets ``status_error``.

        Returns:
            True if the session was accepted and cleared.
        """
        ex = self.state
        if ex is None or not ex.can_accept:
            return False

        if self.store is not None:
            try:
                if ex.ocr_text or ex.ocr_tsv:
                    self.store.update_ocr(ex.doc_id, ex.ocr_text, ex.ocr_tsv)
                if ex.hints is not None:
                    apply_hints(self.store, ex.doc_id, ex.hints)
            except StoreError as e:
                logger.error(f"Saving extraction for {ex.filename} failed: {e}")
                self.status_error = f"save extraction: {e}"
                return False

        ex.accepted = True
        self.state = None
        return True

    def rerun(self) -> Cmd | None:
        """Restart the LLM step from scratch.

        Only once the session is complete, the LLM step applies, and the
        cursor is on it. Failures of other steps still count.
        """
        ex = self.state
        if ex is None or not ex.done or not ex.has_llm or ex.cursor_step() != Step.LLM:
            return None
        if self.llm_client is None:
            return None

        ex.llm_accum.clear()
        ex.llm_stream = None
        ex.hints = None
        ex.steps[Step.LLM] = StepInfo()
        ex.done = False
        ex.has_error = any(
            ex.steps[s].status == StepStatus.FAILED for s in ex.active_steps() if s != Step.LLM
        )
        ex.expanded.pop(Step.LLM, None)
        return self._start_llm()

    # -------------------------------------------------------------------------
    # Message handling
    # -------------------------------------------------------------------------

    def handle(self, msg) -> Cmd | None:
        """Apply one message to the session; return the next command, if any."""
        if isinstance(msg, KeyMsg):
            return self.handle_key(msg.key)

        ex = self.state
        if ex is None or getattr(msg, "token", None) is not ex.token:
            # A stream opened for a dead session is never read
            if isinstance(msg, LLMStartedMsg):
                close_stream_soon(msg.stream)
            return None

        if isinstance(msg, OCRProgressMsg):
            return self._on_ocr_progress(msg.progress)
        if isinstance(msg, LLMStartedMsg):
            ex.llm_stream = msg.stream
            return wait_for_llm_chunk(ex.token, msg.stream)
        if isinstance(msg, LLMChunkMsg):
            return self._on_llm_chunk(msg)
        return None

    def _on_ocr_progress(self, progress: OCRProgress) -> Cmd | None:
        ex = self.state
        step = ex.steps[Step.OCR]

        if progress.error is not None:
            step.status = StepStatus.FAILED
            self._finish_timing(step)
            step.logs.append(str(progress.error))
            ex.has_error = True
            # The model can still run on whatever text exists
            if ex.has_llm and self.llm_client is not None:
                return self._start_llm()
            ex.done = True
            return None

        if not progress.done:
            if progress.phase == PHASE_RASTERIZE:
                step.detail = f"rasterizing {progress.page}/{progress.total}"
            elif progress.phase == PHASE_OCR:
                step.detail = f"page {progress.page}/{progress.total}"
            return wait_for_ocr_progress(ex.token, ex.ocr_stream)

        step.status = StepStatus.DONE
        self._finish_timing(step)
        n_chars = len(progress.text.strip())
        step.detail = "tesseract"
        step.metric = f"{n_chars} chars"
        if n_chars:
            step.logs = progress.text.split("\n")

        ex.ocr_text = progress.text
        ex.ocr_tsv = progress.tsv
        # Images have no text layer; OCR is the primary source
        if n_chars and not ex.extracted_text:
            ex.extracted_text = progress.text

        if ex.has_llm and self.llm_client is not None:
            return self._start_llm()
        ex.done = True
        return None

    def _on_llm_chunk(self, msg: LLMChunkMsg) -> Cmd | None:
        ex = self.state
        step = ex.steps[Step.LLM]

        if msg.err is not None:
            step.status = StepStatus.FAILED
            self._finish_timing(step)
            step.logs.append(str(msg.err))
            ex.has_error = True
            ex.done = True
            return None

        if msg.content:
            ex.llm_accum.append(msg.content)
            step.logs = "".join(ex.llm_accum).split("\n")

        if not msg.done:
            return wait_for_llm_chunk(ex.token, ex.llm_stream)

        self._finish_timing(step)
        response = "".join(ex.llm_accum)
        step.metric = f"{len(response)} chars"
        try:
            ex.hints = parse_extraction_response(response)
            step.status = StepStatus.DONE
        except ResponseParseError as e:
            step.status = StepStatus.FAILED
            step.logs.append(f"parse error: {e}")
            ex.has_error = True
        ex.done = True
        return None

    # -------------------------------------------------------------------------
    # Step starters and commands
    # -------------------------------------------------------------------------

    def _start_step(self, step: Step, detail: str = "") -> None:
        info = self.state.steps[step]
        info.status = StepStatus.RUNNING
        info.started = self._clock()
        if detail:
            info.detail = detail

    def _finish_timing(self, step: StepInfo) -> None:
        if step.started is not None:
            step.elapsed = self._clock() - step.started

    def _ocr_cmd(self) -> Cmd:
        ex = self.state
        token = ex.token

        async def start() -> OCRProgressMsg | None:
            try:
                stream = ocr_with_progress(ex.file_data, ex.mime, ex.max_ocr_pages, token)
            except Exception as e:
                return OCRProgressMsg(token=token, progress=OCRProgress(done=True, error=e))
            ex.ocr_stream = stream
            return await wait_for_ocr_progress(token, stream)()

        return start

    def _start_llm(self) -> Cmd | None:
        client = self.llm_client
        if client is None:
            return None
        self._start_step(Step.LLM, self.model_label())

        ex = self.state
        token = ex.token
        prompt = build_extraction_prompt(
            filename=ex.filename,
            mime=ex.mime,
            size=len(ex.file_data),
            entities=entity_context(self.store),
            pdf_text=ex.pdf_text,
            ocr_text=ex.ocr_text,
            text=ex.extracted_text,
        )

        async def start() -> LLMStartedMsg | LLMChunkMsg | None:
            try:
                stream = await token.guard(client.chat_stream(prompt.messages()))
            except ExtractionCancelled:
                return None
            except Exception as e:
                return LLMChunkMsg(token=token, done=True, err=e)
            return LLMStartedMsg(token=token, stream=stream)

        return start

    # -------------------------------------------------------------------------
    # Keys and view state
    # -------------------------------------------------------------------------

    def handle_key(self, key: str) -> Cmd | None:
        """Keys: j/down, k/up move; enter expands; r reruns; a accepts; esc discards."""
        ex = self.state
        if ex is None:
            return None

        if key == "esc":
            self.discard()
        elif key in ("j", "down"):
            self.move_cursor(1)
        elif key in ("k", "up"):
            self.move_cursor(-1)
        elif key == "enter":
            self.toggle_expand()
        elif key == "r":
            return self.rerun()
        elif key == "a":
            self.accept()
        return None

    def move_cursor(self, delta: int) -> None:
        ex = self.state
        if ex is None:
            return
        last = len(ex.active_steps()) - 1
        ex.cursor = max(0, min(last, ex.cursor + delta))

    def toggle_expand(self) -> None:
        ex = self.state
        if ex is None:
            return
        step = ex.cursor_step()
        ex.expanded[step] = not self.is_expanded(step)

    def is_expanded(self, step: Step) -> bool:
        """Running and failed steps auto-expand; the LLM step stays open when done."""
        ex = self.state
        if ex is None:
            return False
        if step in ex.expanded:
            return ex.expanded[step]
        status = ex.steps[step].status
        return status in (StepStatus.RUNNING, StepStatus.FAILED) or (
            step == Step.LLM and status == StepStatus.DONE
        )

    def render_overlay(self) -> str:
        """Plain-text view of the session."""
        ex = self.state
        if ex is None:
            return ""

        lines = [f"Extracting {ex.filename}", ""]
        active = ex.active_steps()
        detail_w = max((len(ex.steps[s].detail) for s in active), default=0)
        metric_w = max((len(ex.steps[s].metric) for s in active), default=0)

        for i, step in enumerate(active):
            info = ex.steps[step]
            expanded = self.is_expanded(step)
            cursor = "  "
            if i == ex.cursor and ex.done:
                cursor = "v " if expanded else "> "
            header = f"{cursor}{STATUS_GLYPHS[info.status]} {step.label:<4}"
            if detail_w:
                header += f"  {info.detail:<{detail_w}}"
            if metric_w:
                header += f"  {info.metric:>{metric_w}}"
            elapsed = self._elapsed_label(info)
            if elapsed:
                header += f"  {elapsed}"
            if step == Step.LLM and info.status == StepStatus.DONE and ex.done and i == ex.cursor:
                header += "  r to rerun"
            lines.append(header.rstrip())

            if expanded and info.logs:
                body = "\n".join(info.logs)
                if step == Step.LLM and info.status != StepStatus.FAILED:
                    body = strip_code_fences(body)
                lines.extend(f"     | {line}" for line in body.split("\n"))

        lines.append("")
        if ex.done:
            keys = ["j/k navigate", "enter expand"]
            if ex.can_accept:
                keys.append("a accept")
            keys.append("esc discard")
        else:
            keys = ["esc cancel"]
        lines.append(" . ".join(keys))
        if self.status_error:
            lines.append(f"error: {self.status_error}")
        return "\n".join(lines)

    def _elapsed_label(self, info: StepInfo) -> str:
        if info.elapsed > 0:
            return f"{info.elapsed:.2f}s"
        if info.status == StepStatus.RUNNING and info.started is not None:
            return f"{self._clock() - info.started:.1f}s"
        return ""


def _text_step(mime: str, extracted_text: str) -> StepInfo:
    """The text step is filled synchronously from already-extracted text."""
    if mime == MimeTypes.PDF:
        tool = "pdf"
    elif mime.startswith("text/"):
        tool = "plaintext"
    else:
        tool = mime
    n_chars = len(extracted_text.strip())
    return StepInfo(
        status=StepStatus.DONE,
        detail=tool,
        metric=f"{n_chars} chars",
        logs=extracted_text.split("\n") if n_chars else [],
    )
