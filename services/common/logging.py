"""Structured logging for the deep learning API services.

structlog renders every record, including records from stdlib loggers such
as uvicorn and transformers, so one process emits one log format.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from collections.abc import Generator
from contextlib import contextmanager
from typing import IO, TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from services.common.config import LoggingConfig

# Libraries that log every download chunk or tensor op at INFO
_NOISY_LOGGERS = ("urllib3", "filelock", "huggingface_hub", "PIL", "numba")


class _ServiceNameAdder:
    """Processor stamping records with the service name unless already bound."""

    def __init__(self, service_name: str | None) -> None:
        self.service_name = service_name

    def __call__(self, _: Any, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        if self.service_name:
            event_dict.setdefault("service", self.service_name)
        return event_dict


def _level_number(level: str) -> int:
    number = logging.getLevelNamesMapping().get(level.upper())
    return number if number is not None else logging.INFO


def configure_logging(
    level: str = "INFO",
    *,
    json_logs: bool = True,
    service_name: str | None = None,
    stream: IO[str] | None = None,
    log_file: str | Path | None = None,
) -> None:
    """Route structlog and stdlib logging through one structlog formatter.

    Args:
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        json_logs: JSON lines when True, colourless console output otherwise
        service_name: Added to every record as ``service``
        stream: Destination, sys.stdout by default
        log_file: Optional file receiving the same records; parent
            directories are created
    """
    threshold = _level_number(level)

    pre_chain = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", key="timestamp"),
        _ServiceNameAdder(service_name),
        structlog.processors.dict_tracebacks,
    ]
    if json_logs:
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=pre_chain,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )
    handlers: list[logging.Handler] = [logging.StreamHandler(stream or sys.stdout)]
    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))
    for handler in handlers:
        handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = handlers
    root.setLevel(threshold)
    logging.captureWarnings(True)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(threshold, logging.WARNING))

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.make_filtering_bound_logger(threshold),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def configure_from_config(config: LoggingConfig, service_name: str) -> None:
    """Apply a loaded ``LoggingConfig`` section."""
    configure_logging(
        config.level,
        json_logs=config.json_logs,
        service_name=service_name,
        log_file=config.log_file,
    )


def get_logger(
    name: str,
    *,
    correlation_id: str | None = None,
    service_name: str | None = None,
) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger, optionally bound to a request and service."""
    bindings = {}
    if correlation_id:
        bindings["correlation_id"] = correlation_id
    if service_name:
        bindings["service"] = service_name
    logger = structlog.stdlib.get_logger(name)
    return logger.bind(**bindings) if bindings else logger


@contextmanager
def correlation_context(
    correlation_id: str | None,
) -> Generator[structlog.stdlib.BoundLogger, None, None]:
    """Bind ``correlation_id`` into the logging context for one request.

    Nested blocks restore the outer ID on exit; ``None`` binds nothing.

    Example:
        with correlation_context("req-1234") as logger:
            logger.info("nlp.generate_started")
    """
    logger = structlog.stdlib.get_logger()
    if not correlation_id:
        yield logger
        return
    with structlog.contextvars.bound_contextvars(correlation_id=correlation_id):
        yield logger


__all__ = [
    "configure_from_config",
    "configure_logging",
    "correlation_context",
    "get_logger",
]
