"""
Logging configuration using Loguru.

Review context (event, proposal, thread, actor, recipient) travels in the
record's ``extra`` dict, either bound with ``logger.bind(...)`` at the call
site or set for a whole block with ``logger.contextualize(...)``. Console
lines render it as a trailing ``[key=value ...]`` suffix; JSON file records
keep it as structured fields.
"""

import sys
from pathlib import Path

from loguru import logger

CONTEXT_KEYS = ("event_id", "proposal_id", "thread_id", "actor", "recipient", "user")


def format_context(extra: dict) -> str:
    """Render the known context keys of a record's extra dict."""
    pairs = [f"{key}={extra[key]}" for key in CONTEXT_KEYS if extra.get(key) is not None]
    return f" [{' '.join(pairs)}]" if pairs else ""


def _add_context(record) -> None:
    record["extra"]["context"] = format_context(record["extra"])


def setup_logging(
    level: str = "INFO",
    log_to_file: bool = True,
    log_dir: str = "logs",
    file_rotation: str = "10 MB",
    file_retention: str = "7 days",
    compression: str = "zip",
    serialize: bool = True,
) -> None:
    """Configure Loguru logger with review context, JSON serialization and file rotation."""
    logger.remove()
    logger.configure(patcher=_add_context)

    # Console logging
    logger.add(
        sys.stderr,
        level=level,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level><yellow>{extra[context]}</yellow>",
        colorize=True,
        serialize=False,
    )

    if log_to_file:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)

        # File logging with JSON serialization
        logger.add(
            log_path / "reviewflow_{time:YYYY-MM-DD}.log",
            level=level,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}{extra[context]}",
            rotation=file_rotation,
            retention=file_retention,
            compression=compression,
            serialize=serialize,
            enqueue=True,
        )


def get_logger(name: str, **context):
    """
    Get a logger instance for a module.

    Args:
        name: Module name
        **context: Review context bound to every record of this logger
    """
    return logger.bind(module=name, **context)
