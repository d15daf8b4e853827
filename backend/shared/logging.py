"""structlog setup for the arena server.

stdout follows LOG_FORMAT ("json" or "console"/unset); the optional file in
log_dir is always JSON lines. LOG_LEVEL picks the root level (default INFO).

Per-connection context (room_id, connection_id) is bound once by the
websocket endpoint with bind_connection() and rendered right after the event
name on every record emitted while that connection is being served.
"""

from __future__ import annotations

import logging
import os
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from collections.abc import MutableMapping
    from typing import Any

LOG_FILE_TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"
SESSION_KEYS = ("room_id", "connection_id")

_LOG_FORMATS = ("json", "console", "")
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# Per-frame chatter from the ASGI server and the websocket library.
_NOISY_LOGGERS = ("uvicorn.access", "websockets.protocol", "websockets.server")


def bind_connection(connection_id: str, room_id: str) -> None:
    structlog.contextvars.bind_contextvars(connection_id=connection_id, room_id=room_id)


def unbind_connection() -> None:
    structlog.contextvars.unbind_contextvars(*SESSION_KEYS)


def _session_keys_first(
    _logger: object,
    _method_name: str,
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    """Put event, room_id and connection_id ahead of the other fields."""
    head = {key: event_dict.pop(key) for key in ("event", *SESSION_KEYS) if key in event_dict}
    head.update(event_dict)
    return head


def shared_processors() -> list[Any]:
    """Processor chain that ends by handing the record to stdlib logging."""
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        _session_keys_first,
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ]


def _is_test() -> bool:
    return "pytest" in sys.modules


def _env_choice(name: str, default: str, choices: tuple[str, ...]) -> str:
    value = os.environ.get(name, default)
    value = value.upper() if name == "LOG_LEVEL" else value.lower()
    if value not in choices:
        msg = f"Invalid {name}={value!r}. Expected one of: {', '.join(c or '<unset>' for c in choices)}."
        raise ValueError(msg)
    return value


def _formatter(renderer: Any) -> structlog.stdlib.ProcessorFormatter:  # noqa: ANN401
    return structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            renderer,
        ],
    )


def setup_logging(log_dir: Path | str | None = None, level: int | None = None) -> Path | None:
    """Configure structlog and the root logger. Returns the log file path, if any.

    No file is created while running under pytest.
    """
    json_stdout = _env_choice("LOG_FORMAT", "", _LOG_FORMATS) == "json"
    if level is None:
        level = getattr(logging, _env_choice("LOG_LEVEL", "INFO", _LOG_LEVELS))

    structlog.configure(
        processors=shared_processors(),
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    stdout_renderer = (
        structlog.processors.JSONRenderer()
        if json_stdout
        else structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty(), sort_keys=False)
    )
    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(_formatter(stdout_renderer))
    root_logger.addHandler(stdout_handler)

    if log_dir is None or _is_test():
        return None

    dir_path = Path(log_dir)
    dir_path.mkdir(parents=True, exist_ok=True)
    file_path = dir_path / f"arena_{datetime.now(tz=UTC).strftime(LOG_FILE_TIMESTAMP_FORMAT)}.log"
    file_handler = logging.FileHandler(file_path)
    file_handler.setFormatter(_formatter(structlog.processors.JSONRenderer()))
    root_logger.addHandler(file_handler)
    return file_path
