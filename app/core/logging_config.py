"""Loguru setup: one console sink, an optional rotated file sink, job-scoped loggers."""

import sys
from pathlib import Path
from typing import Any, Optional, Union

from loguru import logger

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "{extra[scope]}<level>{message}</level>"
)

FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} | {message} | {extra}"


def _scope(record: dict) -> None:
    """Render bound job/segment/stage context as a short prefix, e.g. "[job_ab12 seg 3] "."""
    extra = record["extra"]
    parts = []
    if extra.get("job_id"):
        parts.append(str(extra["job_id"]))
    if extra.get("segment") is not None:
        parts.append(f"seg {extra['segment']}")
    if extra.get("stage"):
        parts.append(str(extra["stage"]))
    extra["scope"] = f"[{' '.join(parts)}] " if parts else ""


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[Union[str, Path]] = None,
    rotation: str = "10 MB",
    retention: str = "7 days",
) -> None:
    """
    Configure the console sink and, when `log_file` is set, a rotated file sink.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional path to log file
        rotation: Log rotation size
        retention: Log retention period
    """
    logger.remove()
    logger.configure(patcher=_scope)

    logger.add(sys.stderr, format=CONSOLE_FORMAT, level=log_level, colorize=True)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        # enqueue: render jobs log from several worker threads
        logger.add(
            log_file,
            format=FILE_FORMAT,
            level=log_level,
            rotation=rotation,
            retention=retention,
            compression="zip",
            enqueue=True,
        )


def get_logger(name: str, **context: Any) -> Any:
    """
    Get a logger bound to `name` and any job context.

    Args:
        name: Logger name (typically __name__)
        **context: job_id, segment, stage

    Returns:
        Logger instance with bound context
    """
    return logger.bind(name=name, **context)


# Initialize logging on import
setup_logging()
