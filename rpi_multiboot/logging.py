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
        "RPI_MULTIBOOT_LOG_DIR",
        Path.home() / ".local" / "state" / "rpi-multiboot" / "logs",
    )
)


def _should_log_command_output(record) -> bool:
    """Filter raw command stdout/stderr lines - only show in TRACE mode."""
    tags = record["extra"].get("tags", [])

    if "command-output" in tags:
        return record["level"].no <= logger.level("TRACE").no

    return True


def setup_logging(
    *,
    verbose: bool = False,
    debug: bool = False,
    log_dir: Path | None = None,
) -> Logger:
    """
    Setup console and file logging.

    Logging Tiers:
    - ERROR: Step failures, external tool failures
    - SUCCESS/INFO: Provisioning steps, boot switches, label changes
    - DEBUG: Executed commands and their output

    Log Files:
    - operations.log: INFO+ events (7 day retention)
    - debug.log: DEBUG+ events when --debug is enabled (3 day retention)

    Args:
        verbose: Show DEBUG messages on the console
        debug: Show DEBUG messages and write debug.log
        log_dir: Custom log directory (defaults to ~/.local/state/rpi-multiboot/logs)
    """
    logger.remove()
    logger.configure(extra={"job_id": "-", "tags": [], "source": "APP"})

    console_level = "DEBUG" if (verbose or debug) else "INFO"

    # SINK 1: Console (stderr) - User-facing
    logger.add(
        sys.stderr,
        level=console_level,
        backtrace=False,
        diagnose=False,
        filter=_should_log_command_output,
        colorize=True,
        format=(
            "<green>{time:HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{extra[source]: <10}</cyan> | "
            "{message}"
        ),
    )

    log_dir = log_dir or DEFAULT_LOG_DIR
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
    except OSError as error:
        logger.warning(f"File logging disabled, cannot create {log_dir}: {error}")
        return logger

    # SINK 2: Operations Log - Important events only (INFO+)
    logger.add(
        log_dir / "operations.log",
        level="INFO",
        rotation="5 MB",
        retention="7 days",
        compression="zip",
        backtrace=False,
        diagnose=False,
        format=(
            "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
            "{level: <8} | "
            "{extra[source]: <10} | "
            "{extra[job_id]: <18} | "
            "{message}"
        ),
    )

    # SINK 3: Debug Log - Detailed diagnostics
    if debug:
        logger.add(
            log_dir / "debug.log",
            level="TRACE",
            rotation="10 MB",
            retention="3 days",
            compression="zip",
            backtrace=True,
            diagnose=True,
            format=(
                "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
                "{level: <8} | "
                "{extra[source]: <10} | "
                "{extra[job_id]: <18} | "
                "{extra[tags]} | "
                "{message}"
            ),
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
        tags: Tags for filtering (e.g., ["provision", "storage"])
        source: Source component (e.g., "provision", "boot", "label")
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

    Logs operation start, completion and failure with duration tracking.

    Example:
        with operation_context("provision", target="/dev/sdb2") as log:
            log.info("Formatting")
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
                f"{operation.capitalize()} completed",
                duration_seconds=round(duration, 2),
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
    Factory for creating domain-specific loggers with automatic context.
    """

    @staticmethod
    def for_boot() -> Logger:
        """Logger for boot partition and shadow directory synchronization."""
        return get_logger(source="boot", tags=["boot"])

    @staticmethod
    def for_label() -> Logger:
        """Logger for filesystem label operations."""
        return get_logger(source="label", tags=["label", "storage"])

    @staticmethod
    def for_storage() -> Logger:
        """Logger for format, mount and sync primitives."""
        return get_logger(source="storage", tags=["storage"])

    @staticmethod
    def for_system() -> Logger:
        """Logger for system operations (startup, config)."""
        return get_logger(source="system", tags=["system"])
