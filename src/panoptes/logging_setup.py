"""Logging configuration shared by every Panoptes command."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

from panoptes.config.models import LoggingSettings

_FILE_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
_HANDLER_MARKER = "_panoptes_handler"


def configure_logging(
    settings: LoggingSettings,
    *,
    state_dir: Path,
    verbose: bool = False,
    console: Console | None = None,
) -> Path:
    """Install console and rotating-file handlers on the `panoptes` logger.

    Calling this again replaces the handlers installed by a previous call, so
    commands invoked repeatedly in one process (tests, for example) do not
    stack duplicate output.

    Args:
        settings: Logging section of the configuration.
        state_dir: Directory that receives the log file.
        verbose: Force DEBUG level regardless of `settings.level`.
        console: Console used for the rich handler, stderr by default.

    Returns:
        Path: Location of the log file.
    """
    level = logging.DEBUG if verbose else logging.getLevelName(settings.level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    logger = logging.getLogger("panoptes")
    for handler in list(logger.handlers):
        if getattr(handler, _HANDLER_MARKER, False):
            logger.removeHandler(handler)
            handler.close()

    console_handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    console_handler.setLevel(level)
    setattr(console_handler, _HANDLER_MARKER, True)
    logger.addHandler(console_handler)

    state_dir.mkdir(parents=True, exist_ok=True)
    log_path = state_dir / settings.file
    file_handler = RotatingFileHandler(
        log_path,
        maxBytes=settings.max_size_mb * 1024 * 1024,
        backupCount=settings.backup_count,
        encoding="utf-8",
    )
    file_handler.setFormatter(logging.Formatter(_FILE_FORMAT))
    file_handler.setLevel(logging.DEBUG if verbose else min(level, logging.INFO))
    setattr(file_handler, _HANDLER_MARKER, True)
    logger.addHandler(file_handler)

    logger.setLevel(min(level, file_handler.level))
    logger.propagate = False
    return log_path


__all__ = ["configure_logging"]
