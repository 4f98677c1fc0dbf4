"""
Structured logging configuration using structlog.

Every module logs through ``structlog.get_logger(__name__)`` with snake_case
event names and key-value context:

    log.info("command_executed", command="StartBreathing", technique_id="box4")

Console output is colored in debug mode and JSON otherwise. When a log
directory is given, each process run also writes to its own timestamped file
and older run files are culled.
"""

import logging
import os
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import structlog
from structlog.typing import Processor

from breathwork.core.config import settings

LOG_FILE_PREFIX = "breathwork_"


def _cull_old_logs(logs_dir: Path, keep: int) -> None:
    """Delete old run log files, keeping only the N most recent."""
    log_files = sorted(
        logs_dir.glob(f"{LOG_FILE_PREFIX}*.log"),
        key=lambda p: p.stat().st_mtime,
        reverse=True,
    )
    for old_file in log_files[max(keep, 0):]:
        try:
            os.remove(old_file)
        except OSError:
            pass  # file locked or already gone


def configure_logging(
    logs_dir: Optional[Path] = None,
    log_runs_to_keep: int = 5,
    level: int = logging.INFO,
) -> None:
    """Configure structlog for the application.

    Call this once at application startup, before any logging. Safe to call
    again (tests, reloads): existing root handlers are replaced.

    Args:
        logs_dir: Directory for per-run log files. None disables file output.
        log_runs_to_keep: Number of recent run logs to retain (default: 5)
        level: Minimum log level
    """
    shared_processors: List[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.ExtraAdder(),
    ]

    if settings.debug:
        processors = shared_processors + [structlog.dev.ConsoleRenderer(colors=True)]
    else:
        processors = shared_processors + [
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ]

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)

    root_logger.setLevel(level)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(console_handler)

    if logs_dir is not None:
        logs_dir = Path(logs_dir)
        logs_dir.mkdir(parents=True, exist_ok=True)
        # keep-1 to make room for this run's file
        _cull_old_logs(logs_dir, keep=log_runs_to_keep - 1)

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        file_handler = logging.FileHandler(
            logs_dir / f"{LOG_FILE_PREFIX}{timestamp}.log", mode="w"
        )
        file_handler.setFormatter(logging.Formatter("%(message)s"))
        root_logger.addHandler(file_handler)

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Get a logger instance with the given name.

    Usage:
        from breathwork.core.logging import get_logger

        log = get_logger(__name__)
        log.info("timer_started", technique_id="box4")
    """
    return structlog.get_logger(name)


def bind_context(**kwargs) -> None:
    """
    Bind context variables included in all subsequent logs.

        bind_context(request_id=request_id)
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Clear all bound context variables from the logging context."""
    structlog.contextvars.clear_contextvars()
