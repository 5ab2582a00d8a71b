from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from typing import TextIO

from rich.console import Console
from rich.logging import RichHandler

# HTTP stack loggers; httpx alone logs one INFO line per favicon candidate.
HTTP_LOGGERS = ("httpx", "httpcore")

PLAIN_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass(frozen=True)
class LogConfig:
    level: str = "INFO"
    no_color: bool = False
    # Floor for HTTP_LOGGERS; they never log below the app level either.
    library_level: str = "WARNING"


def _parse_level(name: str, default: int) -> int:
    value = logging.getLevelName(name.strip().upper())
    return value if isinstance(value, int) else default


def _wants_rich(cfg: LogConfig, stream: TextIO) -> bool:
    if cfg.no_color or os.getenv("NO_COLOR") is not None:
        return False
    isatty = getattr(stream, "isatty", None)
    return bool(isatty and isatty())


def _build_handler(cfg: LogConfig, stream: TextIO) -> logging.Handler:
    if _wants_rich(cfg, stream):
        handler: logging.Handler = RichHandler(
            console=Console(file=stream),
            rich_tracebacks=True,
            show_time=False,
            show_path=False,
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
    else:
        handler = logging.StreamHandler(stream)
        handler.setFormatter(logging.Formatter(PLAIN_FORMAT))
    return handler


def setup_logging(cfg: LogConfig, stream: TextIO | None = None) -> logging.Handler:
    """Replace root handlers with one stderr handler and return it.

    Rich output is used only on a terminal without NO_COLOR set; pipes and
    cron jobs get the plain timestamped format.
    """
    level = _parse_level(cfg.level, logging.INFO)
    handler = _build_handler(cfg, stream if stream is not None else sys.stderr)
    handler.setLevel(level)

    root = logging.getLogger()
    root.setLevel(level)
    for h in list(root.handlers):
        root.removeHandler(h)
    root.addHandler(handler)

    library_level = max(level, _parse_level(cfg.library_level, logging.WARNING))
    for name in HTTP_LOGGERS:
        logging.getLogger(name).setLevel(library_level)
    return handler


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
