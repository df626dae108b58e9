import logging
import sys
from pathlib import Path
from typing import IO, Any

import structlog

SUCCESS = "success"

_HANDLER_TAG = "_bootlayer_sink"


def _promote_success(_: Any, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Rewrite the level of events emitted through ``log_success``."""
    if event_dict.pop("_success", False):
        event_dict["level"] = SUCCESS
    return event_dict


def _shared_processors() -> list[Any]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        _promote_success,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]


def _console_handler(console: IO[str] | str | Path | None) -> logging.Handler:
    if isinstance(console, (str, Path)):
        # Serial consoles such as /dev/ttyS0 are opened like append-only files
        handler: logging.Handler = logging.FileHandler(console, mode="a", encoding="utf-8")
        colors = False
    else:
        stream = console or sys.stderr
        handler = logging.StreamHandler(stream)
        colors = bool(getattr(stream, "isatty", lambda: False)())

    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.dev.ConsoleRenderer(colors=colors),
            ],
            foreign_pre_chain=_shared_processors(),
        )
    )
    return handler


def _file_handler(log_file: str | Path) -> logging.Handler:
    path = Path(log_file)
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, mode="a", encoding="utf-8")
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.JSONRenderer(),
            ],
            foreign_pre_chain=_shared_processors(),
        )
    )
    return handler


def configure_logging(
    level: int | str = logging.INFO,
    log_file: str | Path | None = None,
    console: IO[str] | str | Path | None = None,
) -> None:
    """Configure structlog/standard logging bridge.

    Every event goes to the interactive console (or serial device) and, when
    ``log_file`` is set, is appended as a JSON line to the durable log.
    """

    structlog.configure(
        processors=[
            *_shared_processors(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handlers = [_console_handler(console)]
    if log_file is not None:
        handlers.append(_file_handler(log_file))

    root = logging.getLogger()
    for existing in list(root.handlers):
        if getattr(existing, _HANDLER_TAG, False):
            root.removeHandler(existing)
            existing.close()
    for handler in handlers:
        setattr(handler, _HANDLER_TAG, True)
        root.addHandler(handler)
    root.setLevel(level)


def bind_context(**kwargs: Any) -> structlog.stdlib.BoundLogger:
    """Bind contextual fields (run id, namespace) for every later log event."""

    structlog.contextvars.bind_contextvars(**kwargs)
    logger = structlog.get_logger()
    return logger.bind(**kwargs)


def log_success(logger: Any, event: str, **kwargs: Any) -> None:
    """Emit ``event`` at INFO severity, labelled with the ``success`` level."""
    logger.info(event, _success=True, **kwargs)
