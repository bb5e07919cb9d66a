"""
Logging setup for pgnfetch.

structlog renders every event (JSON lines by default, colored console output
when general.json_logs is off) and hands the rendered line to the stdlib root
logger. The root logger writes to stderr and, when general.log_to_file is
set, to a daily file under general.logs_dir.

Per-request fields are bound with LogContext and appear on every event logged
inside the block, including events from the browser and extractor modules.
"""

import logging
import sys
from datetime import date
from pathlib import Path
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from pgnfetch.utils.config import GeneralConfig, get_settings

HEALTH_EVENT = "health_check"


def _drop_health_debug(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Health checks are polled often; their debug events are discarded."""
    if method_name == "debug" and str(event_dict.get("event", "")).startswith(HEALTH_EVENT):
        raise structlog.DropEvent
    return event_dict


def _upper_level(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    # add_log_level maps exception() to "error"
    event_dict = structlog.stdlib.add_log_level(logger, method_name, event_dict)
    event_dict["level"] = event_dict["level"].upper()
    return event_dict


def build_processors(json_format: bool) -> list[Processor]:
    """Processor chain shared by every logger.

    Args:
        json_format: Render JSON lines (True) or console output (False).
    """
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        _drop_health_debug,
        structlog.stdlib.add_logger_name,
        _upper_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if json_format:
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer(ensure_ascii=False))
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))
    return processors


def resolve_log_file(general: GeneralConfig, today: date | None = None) -> Path:
    """Daily log file for general.logs_dir.

    A relative logs_dir is taken from the working directory, never from the
    installed package location.
    """
    logs_dir = Path(general.logs_dir).expanduser()
    if not logs_dir.is_absolute():
        logs_dir = Path.cwd() / logs_dir
    stamp = (today or date.today()).strftime("%Y%m%d")
    return logs_dir / f"{general.project_name}_{stamp}.log"


def configure_logging(
    general: GeneralConfig | None = None,
    *,
    log_level: str | None = None,
    json_format: bool | None = None,
    log_file: str | Path | None = None,
) -> Path | None:
    """Configure structlog and the stdlib root logger.

    Args:
        general: General settings. Read from get_settings() when omitted.
        log_level: Overrides general.log_level.
        json_format: Overrides general.json_logs.
        log_file: Explicit log file. When omitted, a daily file under
            general.logs_dir is used if general.log_to_file is set.

    Returns:
        The file being written, or None when logging to stderr only. A log
        directory that cannot be created disables file logging with a
        warning instead of failing startup.
    """
    if general is None:
        general = get_settings().general
    level_name = (log_level or general.log_level).upper()
    if json_format is None:
        json_format = general.json_logs
    if log_file is None and general.log_to_file:
        log_file = resolve_log_file(general)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    file_error: OSError | None = None
    if log_file is not None:
        log_file = Path(log_file)
        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
        except OSError as e:
            file_error, log_file = e, None

    logging.basicConfig(
        format="%(message)s",
        level=logging.getLevelNamesMapping().get(level_name, logging.INFO),
        handlers=handlers,
        force=True,
    )
    structlog.configure(
        processors=build_processors(json_format),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    if file_error is not None:
        get_logger(__name__).warning(
            "File logging disabled",
            logs_dir=general.logs_dir,
            error=str(file_error),
        )
    return log_file


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Logger for a module, usually get_logger(__name__)."""
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)


class LogContext:
    """Bind fields to every event logged inside a with-block.

    Example:
        with LogContext(request_id="3f2a", url=url):
            logger.info("Fetching moves")
    """

    def __init__(self, **fields: Any):
        self.fields = fields

    def __enter__(self) -> "LogContext":
        bind_context(**self.fields)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        unbind_context(*self.fields)
