"""Structured logging for the extraction pipeline.

Provides consistent logging with:
- Timestamps
- Layer (phase) tracking with elapsed time
- Structured key=value data
- Optional per-run log file for later analysis
"""

import logging
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Any


class PipelineLogger:
    """Structured logger for extraction runs."""

    def __init__(self, name: str = "docextract", verbose: bool = False, log_dir: str | Path | None = None):
        """Initialize the pipeline logger.

        Args:
            name: Logger name.
            verbose: If True, show DEBUG level logs.
            log_dir: Directory for log files. If None, no file logging.
        """
        self.logger = logging.getLogger(name)
        self.verbose = verbose
        self._phase: str = ""
        self._phase_start: float = 0
        self._pipeline_start: float = 0
        self._log_file: Path | None = None
        self._source_file: str = ""
        self._log_dir = Path(log_dir) if log_dir else None

        # Configure if not already configured
        if not self.logger.handlers:
            console_handler = logging.StreamHandler(sys.stderr)
            console_handler.setFormatter(ConsoleFormatter())
            console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
            self.logger.addHandler(console_handler)

        self.logger.setLevel(logging.DEBUG)

    def set_verbose(self, verbose: bool):
        """Update verbose setting."""
        self.verbose = verbose
        for handler in self.logger.handlers:
            if type(handler) is logging.StreamHandler:
                handler.setLevel(logging.DEBUG if verbose else logging.INFO)

    @property
    def log_file(self) -> Path | None:
        return self._log_file

    def _ts(self) -> str:
        return datetime.now().strftime("%H:%M:%S")

    def _elapsed(self) -> str:
        """Elapsed time since phase start."""
        if self._phase_start:
            return f"{time.time() - self._phase_start:.2f}s"
        return ""

    def _total_elapsed(self) -> str:
        """Elapsed time since pipeline start."""
        if self._pipeline_start:
            return f"{time.time() - self._pipeline_start:.2f}s"
        return ""

    def start_pipeline(self, source_file: str):
        """Mark pipeline start and set up file logging."""
        self._pipeline_start = time.time()
        self._source_file = source_file

        if self._log_dir:
            self._log_dir.mkdir(parents=True, exist_ok=True)
            stem = Path(source_file).stem or "document"
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            self._log_file = self._log_dir / f"{stem}_{timestamp}.log"

            # File handler captures everything including DEBUG
            file_handler = logging.FileHandler(self._log_file, encoding="utf-8")
            file_handler.setFormatter(FileFormatter())
            file_handler.setLevel(logging.DEBUG)
            self.logger.addHandler(file_handler)

        self.logger.info(f"[{self._ts()}] Extracting: {source_file}")

    def end_pipeline(self, success: bool = True, stats: dict | None = None):
        """Mark pipeline end."""
        status = "COMPLETE" if success else "COMPLETE WITH ERRORS"
        if stats:
            self.summary(stats)
        self.logger.info(f"Extraction {status} [{self._total_elapsed()}]")
        if self._log_file:
            self.logger.info(f"Log: {self._log_file}")

    def start_phase(self, phase: str, detail: str = ""):
        """Start a new layer (text, ocr, llm)."""
        self._phase = phase
        self._phase_start = time.time()

        header = phase.upper()
        if detail:
            # Shorten model names for display
            header += f" ({detail.split('/')[-1]})"
        self.logger.info(header)

    def phase_result(self, result: str, **metrics):
        """Log layer completion with key metrics.

        Args:
            result: Brief result description
            **metrics: Key-value metrics to display
        """
        parts = [result]
        if metrics:
            parts.append(", ".join(f"{k}={v}" for k, v in metrics.items()))
        elapsed = self._elapsed()
        if elapsed:
            parts.append(f"[{elapsed}]")
        self.logger.info(f"  Done: {' | '.join(parts)}")
        self._phase = ""

    def debug(self, message: str, **data):
        """Log debug message (only in verbose mode)."""
        if data:
            message = f"{message} | {_format_data(data)}"
        self.logger.debug(f"[{self._ts()}] {message}")

    def warning(self, message: str, **data):
        """Log warning message."""
        if data:
            message = f"{message} | {_format_data(data)}"
        self.logger.warning(f"[{self._ts()}] WARN: {message}")

    def error(self, message: str, exc: Exception | None = None, **data):
        """Log error message."""
        if data:
            message = f"{message} | {_format_data(data)}"
        if exc:
            message = f"{message} | {type(exc).__name__}: {exc}"
        self.logger.error(f"[{self._ts()}] ERROR: {message}")

    def summary(self, stats: dict):
        """Log a summary block for end-of-run stats."""
        lines = ["SUMMARY"]
        for key, value in stats.items():
            if isinstance(value, dict):
                lines.append(f"  {key}:")
                for k, v in value.items():
                    lines.append(f"    {k}: {v}")
            else:
                lines.append(f"  {key}: {value}")
        self.logger.info("\n".join(lines))


class ConsoleFormatter(logging.Formatter):
    """Console formatter - concise."""

    def format(self, record: logging.LogRecord) -> str:
        # The message already includes timestamp from our methods
        return record.getMessage()


class FileFormatter(logging.Formatter):
    """File formatter - includes full details for analysis."""

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.now().strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
        level = record.levelname[:4]
        return f"{ts} [{level}] {record.getMessage()}"


def _format_data(data: dict[str, Any]) -> str:
    """Format structured data for logging."""
    parts = []
    for k, v in data.items():
        if isinstance(v, str) and len(v) > 50:
            v = v[:47] + "..."
        elif isinstance(v, list) and len(v) > 5:
            v = f"[{len(v)} items]"
        parts.append(f"{k}={v}")
    return ", ".join(parts)


# Global logger instance
_logger: PipelineLogger | None = None


def get_logger(verbose: bool = False, log_dir: str | Path | None = None) -> PipelineLogger:
    """Get or create the global pipeline logger.

    Args:
        verbose: If True, show DEBUG level logs in console.
        log_dir: Directory for log files. If provided and logger already exists,
                 updates the log directory for future file logging.
    """
    global _logger
    if _logger is None:
        _logger = PipelineLogger(verbose=verbose, log_dir=log_dir)
    else:
        if verbose and not _logger.verbose:
            _logger.set_verbose(True)
        if log_dir and not _logger._log_dir:
            _logger._log_dir = Path(log_dir)
    return _logger


def reset_logger():
    """Reset the global logger (for testing)."""
    global _logger
    if _logger:
        for handler in _logger.logger.handlers[:]:
            if isinstance(handler, logging.FileHandler):
                handler.close()
                _logger.logger.removeHandler(handler)
    _logger = None
