"""
Structured logging utilities

Pipeline events (registry fetches, tarball downloads, prompt extraction,
comparisons) are logged as JSON so they can be grepped or fed to jq:

- JSON-formatted log output for parsing
- Context manager for timing operations
- Specialized helpers for extraction and comparison events
- Field inheritance for related log entries
"""
import logging
import json
import time
from typing import Any, Dict, Optional
from contextlib import contextmanager


class StructuredLogger:
    """
    Logger that outputs structured JSON for important events.

    Usage:
        logger = StructuredLogger(__name__)
        logger.info("Tarball downloaded", version="1.0.30", size=1234)
    """

    def __init__(self, name: str):
        """
        Initialize the structured logger.

        Args:
            name: Logger name (typically __name__)
        """
        self.logger = logging.getLogger(name)
        self.default_fields: Dict[str, Any] = {}

    def _log(self, log_level: int, message: str, **fields):
        """Internal logging method with JSON formatting"""
        if not self.logger.isEnabledFor(log_level):
            return
        data = {
            **self.default_fields,
            **fields,
            "message": message,
            "timestamp": time.time()
        }
        self.logger.log(log_level, json.dumps(data, default=str))

    def info(self, message: str, **fields):
        """Log at INFO level with structured fields"""
        self._log(logging.INFO, message, level="info", **fields)

    def warning(self, message: str, **fields):
        """Log at WARNING level with structured fields"""
        self._log(logging.WARNING, message, level="warning", **fields)

    def error(self, message: str, **fields):
        """Log at ERROR level with structured fields"""
        self._log(logging.ERROR, message, level="error", **fields)

    def debug(self, message: str, **fields):
        """Log at DEBUG level with structured fields"""
        self._log(logging.DEBUG, message, level="debug", **fields)

    def with_fields(self, **fields) -> "StructuredLogger":
        """
        Create a child logger with additional default fields.

            version_logger = logger.with_fields(version="1.0.30")
            version_logger.info("Download started")
            version_logger.info("Download completed")

        Returns:
            New StructuredLogger with inherited fields
        """
        child = StructuredLogger(self.logger.name)
        child.default_fields = {**self.default_fields, **fields}
        return child


@contextmanager
def log_duration(operation: str, logger: Optional[StructuredLogger] = None, **extra_fields):
    """
    Context manager to log operation duration.

    Usage:
        with log_duration("tarball_download", version=version):
            data = await registry.download_tarball(url)

    Args:
        operation: Name of the operation being timed
        logger: Optional StructuredLogger (creates one if not provided)
        **extra_fields: Additional fields to include in the log
    """
    if logger is None:
        logger = get_logger("timing")

    start = time.perf_counter()
    error_occurred = None
    try:
        yield
    except Exception as e:
        error_occurred = str(e)
        raise
    finally:
        duration_ms = (time.perf_counter() - start) * 1000
        if error_occurred:
            logger.error(
                f"{operation} failed",
                operation=operation,
                duration_ms=round(duration_ms, 2),
                error=error_occurred,
                **extra_fields
            )
        else:
            logger.info(
                f"{operation} completed",
                operation=operation,
                duration_ms=round(duration_ms, 2),
                **extra_fields
            )


def log_prompt_extraction(
    version: str,
    source_path: str,
    lengths: Dict[str, int],
    strategies: Dict[str, Optional[str]],
    duration_ms: float,
    error: Optional[str] = None,
    logger: Optional[StructuredLogger] = None
):
    """
    Log one prompt-set extraction with per-prompt results.

    Args:
        version: Package version the source came from
        source_path: Archive path of the CLI file
        lengths: Prompt name -> extracted length (0 when absent)
        strategies: Prompt name -> strategy that produced it ("scope",
            "lexical" or None)
        duration_ms: Extraction time in milliseconds
        error: Error message if the extraction failed
        logger: Optional StructuredLogger (creates one if not provided)
    """
    if logger is None:
        logger = get_logger("prompt_extractor")

    log_data = {
        "event": "prompt_extraction",
        "version": version,
        "source_path": source_path,
        "lengths": lengths,
        "strategies": strategies,
        "found": sum(1 for length in lengths.values() if length),
        "duration_ms": round(duration_ms, 2),
    }

    if error:
        log_data["error"] = error
        logger.error("Prompt extraction failed", **log_data)
    else:
        logger.info("Prompt extraction completed", **log_data)


def log_comparison(
    base: str,
    compare: str,
    tab: str,
    added: int,
    removed: int,
    duration_ms: float,
    logger: Optional[StructuredLogger] = None
):
    """
    Log a completed version comparison.

    Args:
        base: Left-hand version
        compare: Right-hand version
        tab: Prompt that was diffed
        added: Lines reported as added
        removed: Lines reported as removed
        duration_ms: End-to-end duration including any downloads
        logger: Optional StructuredLogger (creates one if not provided)
    """
    if logger is None:
        logger = get_logger("comparator")

    logger.info(
        f"Comparison {base} -> {compare} ({tab})",
        event="comparison",
        base=base,
        compare=compare,
        tab=tab,
        added=added,
        removed=removed,
        duration_ms=round(duration_ms, 2),
    )


def get_logger(name: str) -> StructuredLogger:
    """
    Get a structured logger instance.

    This is the primary way to get a logger for a module:

        from promptdiff.core.logging import get_logger
        logger = get_logger(__name__)
        logger.info("Something happened", version="1.0.30")

    Args:
        name: Logger name (typically __name__)

    Returns:
        StructuredLogger instance
    """
    return StructuredLogger(name)
