"""
Structured logging for phishscan.

Every record is rendered by structlog (JSON by default) and written to stderr
and a dated file under general.logs_dir. Scan tasks bind the URL they work on
with LogContext, so concurrent tasks never mix their context.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any

import structlog
from structlog.types import Processor

from phishscan.utils.config import get_project_root, get_settings


def _log_file_for_today() -> Path:
    settings = get_settings()
    log_dir = get_project_root() / settings.general.logs_dir
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir / f"phishscan_{datetime.now().strftime('%Y%m%d')}.log"


def configure_logging(
    log_level: str | None = None,
    log_file: str | Path | None = None,
    json_format: bool = True,
) -> None:
    """Configure structlog on top of the stdlib root logger.

    Safe to call more than once; earlier handlers are replaced.

    Args:
        log_level: DEBUG, INFO, WARNING or ERROR. Defaults to general.log_level.
        log_file: Log file path. Defaults to <logs_dir>/phishscan_YYYYMMDD.log.
        json_format: JSON lines (True) or colored console output (False).
    """
    level_name = (log_level or get_settings().general.log_level).upper()
    log_file = Path(log_file) if log_file is not None else _log_file_for_today()

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level_name, logging.INFO),
        handlers=[
            logging.StreamHandler(sys.stderr),
            logging.FileHandler(log_file, encoding="utf-8"),
        ],
        force=True,
    )

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]
    if json_format:
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Logger for a module (pass __name__)."""
    return structlog.get_logger(name)


class LogContext:
    """Bind key/value pairs to every log call made inside the block.

    Bindings live in contextvars, which asyncio copies per task, so a
    LogContext entered in one scan task is invisible to the others.

    Example:
        with LogContext(url="https://example.com"):
            logger.info("Scanning")
    """

    def __init__(self, **kwargs: Any):
        self.context = kwargs
        self._bound = None

    def __enter__(self) -> "LogContext":
        self._bound = structlog.contextvars.bound_contextvars(**self.context)
        self._bound.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self._bound.__exit__(exc_type, exc_val, exc_tb)
        self._bound = None
