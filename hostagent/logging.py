from __future__ import annotations

import os
import sys
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from loguru import Logger

from loguru import logger

DEFAULT_LOG_DIR = Path(
    os.environ.get(
        "HOSTAGENT_LOG_DIR",
        Path.home() / ".local" / "state" / "hostagent" / "logs",
    )
)


def _should_log_file_io(record) -> bool:
    """Filter quiet file I/O chatter - only show in TRACE mode."""
    tags = record["extra"].get("tags", [])

    # Always log problems
    if record["level"].no >= logger.level("WARNING").no:
        return True

    if "fs" in tags:
        return record["level"].no <= logger.level("TRACE").no

    return True


def _should_log_retry(record) -> bool:
    """Filter per-attempt retry logs unless DEBUG or lower is requested."""
    message = record["message"].lower()
    tags = record["extra"].get("tags", [])

    if "retry" in tags and "making attempt" in message:
        return record["level"].no <= logger.level("DEBUG").no

    return True


def _combined_filter(record) -> bool:
    """Combined filter for all log suppression rules."""
    return _should_log_file_io(record) and _should_log_retry(record)


def setup_logging(
    *,
    debug: bool = False,
    trace: bool = False,
    log_dir: Path | None = None,
) -> Logger:
    """
    Setup multi-tier logging with separate sinks for different log levels.

    Logging Tiers:
    - CRITICAL/ERROR: Unrecoverable failures (no settings, partitioning failed)
    - SUCCESS/INFO: Settings loaded, DNS state saved, disks registered
    - DEBUG: Fallback decisions, retry attempts, command execution
    - TRACE: Ultra-verbose (every file read/write)

    Log Files:
    - agent.log: INFO+ events (7 day retention)
    - debug.log: DEBUG+ events when debug is enabled (3 day retention)
    - structured.jsonl: Structured JSON logs for analysis (7 day retention)

    Args:
        debug: Enable DEBUG level logging
        trace: Enable TRACE level logging (very verbose)
        log_dir: Custom log directory (defaults to ~/.local/state/hostagent/logs)
    """
    logger.remove()
    logger.configure(extra={"job_id": "-", "tags": [], "source": "AGENT"})

    if trace:
        console_level = "TRACE"
    elif debug:
        console_level = "DEBUG"
    else:
        console_level = "INFO"

    # SINK 1: Console (stderr)
    logger.add(
        sys.stderr,
        level=console_level,
        enqueue=True,
        backtrace=False,
        diagnose=False,
        filter=_combined_filter,
        colorize=True,
        format=(
            "<green>{time:HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{extra[source]: <12}</cyan> | "
            "<blue>{extra[job_id]: <15}</blue> | "
            "{message}"
        ),
    )

    log_dir = log_dir or DEFAULT_LOG_DIR
    log_dir.mkdir(parents=True, exist_ok=True)

    # SINK 2: Agent Log - Important events only (INFO+)
    logger.add(
        log_dir / "agent.log",
        level="INFO",
        rotation="5 MB",
        retention="7 days",
        compression="zip",
        enqueue=True,
        backtrace=False,
        diagnose=False,
        format=(
            "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
            "{level: <8} | "
            "{extra[source]: <12} | "
            "{extra[job_id]: <15} | "
            "{message}"
        ),
    )

    # SINK 3: Debug Log - Detailed diagnostics (DEBUG+ when debug=True)
    if debug or trace:
        logger.add(
            log_dir / "debug.log",
            level="TRACE" if trace else "DEBUG",
            rotation="10 MB",
            retention="3 days",
            compression="zip",
            enqueue=True,
            backtrace=True,
            diagnose=True,
            format=(
                "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
                "{level: <8} | "
                "{extra[source]: <12} | "
                "{extra[job_id]: <15} | "
                "{extra[tags]} | "
                "{message}"
            ),
        )

    # SINK 4: Structured JSON Log - For analysis tools (INFO+)
    logger.add(
        log_dir / "structured.jsonl",
        level="INFO",
        rotation="10 MB",
        retention="7 days",
        compression="zip",
        enqueue=True,
        serialize=True,
        format="{message}",
    )

    return logger


def get_logger(
    *,
    job_id: str | None = None,
    tags: Iterable[str] | None = None,
    source: str | None = None,
) -> Logger:
    """
    Get a logger with bound context.

    Args:
        job_id: Job identifier for tracking operations
        tags: Tags for filtering (e.g., ["settings", "disk"])
        source: Source component (e.g., "settings", "dns")

    Returns:
        Logger with bound context
    """
    extras: dict[str, object] = {}
    if job_id is not None:
        extras["job_id"] = job_id
    if tags is not None:
        extras["tags"] = list(tags)
    if source is not None:
        extras["source"] = source
    return logger.bind(**extras)


@contextmanager
def operation_context(operation: str, **details):
    """
    Context manager for tracking long-running operations with automatic timing.

    Logs operation start, completion, and failure with duration tracking.

    Args:
        operation: Operation name (e.g., "partition")
        **details: Operation-specific details to log

    Yields:
        Logger bound with job_id and operation context

    Example:
        with operation_context("partition", device="/dev/sdb") as log:
            log.debug("Writing partition table")
    """
    job_id = f"{operation}-{uuid.uuid4().hex[:8]}"

    with logger.contextualize(job_id=job_id, operation=operation, **details):
        start_time = time.time()
        log = logger.bind(source=operation, job_id=job_id, tags=[operation])

        log.info(f"{operation.capitalize()} started", **details)

        try:
            yield log
            duration = time.time() - start_time
            log.success(
                f"{operation.capitalize()} completed", duration_seconds=round(duration, 2)
            )
        except Exception as e:
            duration = time.time() - start_time
            log.error(
                f"{operation.capitalize()} failed",
                error=str(e),
                error_type=type(e).__name__,
                duration_seconds=round(duration, 2),
            )
            raise


class LoggerFactory:
    """
    Factory for creating component-specific loggers with automatic context.

    Each factory method returns a logger pre-configured with the source and
    tags of one agent component.
    """

    @staticmethod
    def for_settings() -> Logger:
        """Logger for the settings reconciliation service."""
        return logger.bind(source="settings", tags=["settings"])

    @staticmethod
    def for_dns_state() -> Logger:
        """Logger for the DNS records state store."""
        return logger.bind(source="dns", tags=["dns", "state"])

    @staticmethod
    def for_disk(job_id: str | None = None) -> Logger:
        """Logger for disk partitioning and persistent disk bookkeeping."""
        if job_id is None:
            job_id = f"disk-{uuid.uuid4().hex[:8]}"
        return logger.bind(job_id=job_id, source="disk", tags=["disk", "retry"])

    @staticmethod
    def for_network() -> Logger:
        """Logger for default network resolution."""
        return logger.bind(source="network", tags=["network"])

    @staticmethod
    def for_fs() -> Logger:
        """Logger for filesystem access (hidden below TRACE by the console filter)."""
        return logger.bind(source="fs", tags=["fs"])

    @staticmethod
    def for_system() -> Logger:
        """Logger for system operations (startup, config, commands)."""
        return logger.bind(source="system", tags=["system"])
