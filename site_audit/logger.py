# === FILE: site_audit/logger.py ===
"""Logging setup for **SiteAudit**.

One named logger, ``SiteAudit``, is shared by every component::

      from site_audit.logger import logger
      logger.info("Audit started")

Modules may equally call ``logging.getLogger("SiteAudit")``. Console output
goes to *stderr*: stdout is reserved for the JSON responses printed by the CLI.
A rotating log file can be added with :func:`configure`.
"""
from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Final, Iterable, Union

DEFAULT_FORMAT: Final[str] = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOGGER_NAME: Final[str] = "SiteAudit"

#: Third-party loggers that are noisy at INFO (one line per served request).
NOISY_LOGGERS: Final[tuple[str, ...]] = ("aiohttp.access",)

_LevelT = Union[int, str]

_MAX_BYTES: Final[int] = 5 * 1024 * 1024
_BACKUPS: Final[int] = 3


def _console_handler(fmt: str) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(fmt))
    return handler


def _rotating_handler(path: Path | str, fmt: str) -> logging.Handler:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(path, maxBytes=_MAX_BYTES, backupCount=_BACKUPS, encoding="utf-8")
    handler.setFormatter(logging.Formatter(fmt))
    return handler


def _drop_handlers(lg: logging.Logger) -> None:
    for handler in list(lg.handlers):
        lg.removeHandler(handler)
        handler.close()


def quiet(names: Iterable[str] = NOISY_LOGGERS, level: _LevelT = logging.WARNING) -> None:
    """Raise the threshold of third-party loggers."""
    for name in names:
        logging.getLogger(name).setLevel(level)


def configure(
    *,
    level: _LevelT = "INFO",
    log_file: str | Path | None = None,
    log_format: str = DEFAULT_FORMAT,
    replace_handlers: bool = True,
) -> logging.Logger:
    """(Re)configure the ``SiteAudit`` logger.

    ``log_file=None`` keeps output on the console only. With
    ``replace_handlers=False`` new handlers are added next to the existing ones.
    """
    lg = logging.getLogger(LOGGER_NAME)
    lg.setLevel(level)
    if replace_handlers:
        _drop_handlers(lg)
    lg.addHandler(_console_handler(log_format))
    if log_file is not None:
        lg.addHandler(_rotating_handler(log_file, log_format))
    lg.propagate = False
    return lg


def init_logging(
    level: _LevelT = "INFO",
    log_file: str | Path | None = None,
    log_format: str = DEFAULT_FORMAT,
) -> logging.Logger:
    """Entry-point setup used by the CLI and the HTTP server."""
    quiet()
    return configure(level=level, log_file=log_file, log_format=log_format)


logger: logging.Logger = configure()

__all__ = ["logger", "configure", "init_logging", "quiet", "LOGGER_NAME", "DEFAULT_FORMAT"]
