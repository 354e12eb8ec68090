"""CLI entrypoint for document extraction."""

import argparse
import asyncio
import json
import logging
import mimetypes
import os
import sys
import threading
import warnings
from pathlib import Path

# Suppress LiteLLM's direct prints (must be before import)
os.environ.setdefault("LITELLM_LOG", "ERROR")

warnings.filterwarnings("ignore", message="Pydantic serializer warnings")
warnings.filterwarnings("ignore", message="Unclosed client session")
warnings.filterwarnings("ignore", category=ResourceWarning)

# Suppress noisy loggers (HTTP clients, LiteLLM internals)
for logger_name in ["httpx", "httpcore", "litellm", "LiteLLM", "LiteLLM Router", "aiohttp"]:
    logging.getLogger(logger_name).setLevel(logging.ERROR)

from dotenv import load_dotenv  # noqa: E402 - must be after logging config

# Load environment variables before config reads the provider settings
load_dotenv()

from docextract.controller import ExtractionController, KeyMsg  # noqa: E402
from docextract.core.config import API_KEY_ENV_VAR, LLM_PROVIDER, ExtractionSettings, parse_duration  # noqa: E402
from docextract.core.errors import ConfigError  # noqa: E402
from docextract.core.llm_client import LLMClient  # noqa: E402
from docextract.core.pipeline_logger import get_logger  # noqa: E402
from docextract.pipeline import Pipeline  # noqa: E402
from docextract.runtime import EventLoop  # noqa: E402
from docextract.store import InMemoryStore, entity_context  # noqa: E402

# Input lines mapped to overlay keys; anything else passes through as typed
KEY_ALIASES = {"": "enter", "q": "esc", "quit": "esc"}


def guess_mime(path: Path) -> str:
    """MIME type from the file extension, application/octet-stream if unknown."""
    mime, _ = mimetypes.guess_type(path.name)
    return mime or "application/octet-stream"


def build_llm_client(settings: ExtractionSettings) -> LLMClient | None:
    """Model client for the configured provider, or None when unusable."""
    if not settings.llm_enabled:
        return None
    if API_KEY_ENV_VAR and not os.environ.get(API_KEY_ENV_VAR):
        print(f"Warning: {API_KEY_ENV_VAR} not set, skipping model extraction", file=sys.stderr)
        if LLM_PROVIDER == "azure":
            print("For Azure, set: AZURE_API_KEY, AZURE_API_BASE, AZURE_API_VERSION", file=sys.stderr)
        return None
    return LLMClient(model=settings.model)


async def extract(
    path: Path,
    mime: str,
    settings: ExtractionSettings,
    verbose: bool = False,
    log_dir: Path | None = None,
) -> dict:
    """Run the batch pipeline on one file and return the result as a dict."""
    store = InMemoryStore()
    pipeline = Pipeline(
        llm_client=build_llm_client(settings),
        settings=settings,
        entity_context=entity_context(store),
        logger=get_logger(verbose=verbose, log_dir=log_dir),
    )
    result = await pipeline.run(path.read_bytes(), path.name, mime)
    return {"file": str(path), "mime": mime, **result.to_dict()}


def _read_keys(loop: asyncio.AbstractEventLoop, events: EventLoop) -> None:
    """Forward stdin lines as key presses. Runs on a daemon thread."""
    for line in sys.stdin:
        key = line.strip().lower()
        loop.call_soon_threadsafe(events.send, KeyMsg(KEY_ALIASES.get(key, key)))
    loop.call_soon_threadsafe(events.send, KeyMsg("esc"))


async def extract_interactive(
    path: Path,
    mime: str,
    settings: ExtractionSettings,
    verbose: bool = False,
    log_dir: Path | None = None,
) -> dict:
    """Drive one interactive session; keys come from stdin, one per line.

    Returns the stored document after the session ends (accepted or not).
    """
    pipeline_logger = get_logger(verbose=verbose, log_dir=log_dir)
    pipeline_logger.start_pipeline(path.name)
    data = path.read_bytes()
    store = InMemoryStore()
    doc = store.add_document(path.name, data, mime)

    controller = ExtractionController(store, build_llm_client(settings), settings)
    cmd = await controller.open_document(doc.id)
    if controller.state is None:
        print("Nothing to extract: no OCR tools and no model configured.", file=sys.stderr)
        pipeline_logger.end_pipeline(success=True)
        return vars(store.get_document(doc.id))

    events = EventLoop(controller.handle)
    events.dispatch(cmd)
    threading.Thread(target=_read_keys, args=(asyncio.get_running_loop(), events), daemon=True).start()

    print("keys: j/k move, enter expand, r rerun, a accept, esc discard", file=sys.stderr)
    try:
        while controller.state is not None:
            await events.step()
            if controller.state is not None:
                print(controller.render_overlay() + "\n", file=sys.stderr)
            elif controller.status_error:
                print(f"error: {controller.status_error}", file=sys.stderr)
    finally:
        await events.shutdown()
        pipeline_logger.end_pipeline(success=not controller.status_error)

    return vars(store.get_document(doc.id))


def main():
    parser = argparse.ArgumentParser(
        description="Extract text, OCR and structured hints from a document",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  docextract invoice.pdf
  docextract --no-llm scan.png                 # text and OCR only
  docextract --interactive manual.pdf          # step-by-step, accept/discard
  docextract --max-ocr-pages 5 -o out.json big_scan.pdf
  docextract --log-dir logs invoice.pdf        # keep a DEBUG log per run
        """,
    )
    parser.add_argument("file", help="Path to the document")
    parser.add_argument("--mime", default=None, help="MIME type (default: guessed from extension)")
    parser.add_argument("--no-llm", action="store_true", help="Skip model-based extraction")
    parser.add_argument("--model", default=None, help="Extraction model (default: from environment)")
    parser.add_argument(
        "--max-ocr-pages",
        type=int,
        default=None,
        metavar="N",
        help="Maximum PDF pages to OCR (0 = default of 20)",
    )
    parser.add_argument(
        "--text-timeout",
        default=None,
        metavar="D",
        help='Time bound for PDF text extraction, e.g. "30s" or "1m"',
    )
    parser.add_argument(
        "-i", "--interactive",
        action="store_true",
        help="Run an interactive session (keys on stdin, one per line)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose output with DEBUG level logging",
    )
    parser.add_argument(
        "--log-dir",
        default=None,
        metavar="DIR",
        help="Write a per-run DEBUG log file into this directory",
    )
    parser.add_argument("-o", "--output", default=None, help="Write JSON here instead of stdout")

    args = parser.parse_args()

    path = Path(args.file)
    if not path.is_file():
        print(f"Error: File not found: {path}", file=sys.stderr)
        sys.exit(1)

    try:
        settings = ExtractionSettings.from_env().with_overrides(
            max_ocr_pages=args.max_ocr_pages,
            text_timeout=parse_duration(args.text_timeout, "--text-timeout") if args.text_timeout else None,
            llm_enabled=False if args.no_llm else None,
            model=args.model,
        )
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    mime = args.mime or guess_mime(path)
    run = extract_interactive if args.interactive else extract
    log_dir = Path(args.log_dir) if args.log_dir else None
    output = asyncio.run(run(path, mime, settings, verbose=args.verbose, log_dir=log_dir))

    text = json.dumps(output, indent=2, ensure_ascii=False, default=str)
    if args.output:
        Path(args.output).write_text(text + "\n", encoding="utf-8")
        print(f"[OUTPUT] {args.output}", file=sys.stderr)
    else:
        print(text)
    sys.exit(0)


if __name__ == "__main__":
    main()
