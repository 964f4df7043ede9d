"""Logging for Matilda Bridge.

All bridge loggers feed a single queue drained by a background listener, so
media and signaling callbacks never wait on file or console writes. Records
are tagged with the conference the current task is serving; tasks spawned
after ``bind_conference`` inherit the tag through their context.
"""

import atexit
import contextvars
import logging
import os
import sys
import threading
from logging.handlers import QueueHandler, QueueListener, RotatingFileHandler
from pathlib import Path
from queue import SimpleQueue

LOG_FORMAT = "%(asctime)s %(levelname)-7s [%(conference)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_NO_CONFERENCE = "-"
_conference: contextvars.ContextVar[str] = contextvars.ContextVar("matilda_bridge_conference", default=_NO_CONFERENCE)


def bind_conference(alias: str, participant_id: str | None = None) -> contextvars.Token:
    """Tag log records emitted from the current context with a conference.

    Returns the token to pass to ``unbind_conference``.
    """
    tag = f"{alias}/{participant_id[:8]}" if participant_id else alias
    return _conference.set(tag)


def unbind_conference(token: contextvars.Token) -> None:
    _conference.reset(token)


def current_conference() -> str:
    return _conference.get()


class ConferenceContextFilter(logging.Filter):
    """Stamps ``record.conference`` before the record crosses to the listener thread."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "conference"):
            record.conference = _conference.get()
        return True


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _log_directory() -> Path | None:
    configured = os.environ.get("MATILDA_BRIDGE_LOG_DIR") or os.environ.get("MATILDA_LOG_DIR")
    directory = Path(configured) if configured else Path.home() / ".matilda" / "logs"
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError:
        return None
    return directory


class _LogSink:
    """Process-wide queue plus the listener that fans records out to real handlers."""

    def __init__(self):
        self._lock = threading.Lock()
        self.queue: SimpleQueue | None = None
        self.listener: QueueListener | None = None

    def _build_handlers(self, level: int, console: bool, to_file: bool) -> list[logging.Handler]:
        formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
        handlers: list[logging.Handler] = []

        directory = _log_directory() if to_file else None
        if directory is not None:
            path = directory / os.environ.get("MATILDA_BRIDGE_LOG_FILE", "matilda-bridge.log")
            try:
                handlers.append(
                    RotatingFileHandler(
                        path,
                        maxBytes=_env_int("MATILDA_LOG_MAX_BYTES", 10 * 1024 * 1024),
                        backupCount=_env_int("MATILDA_LOG_BACKUP_COUNT", 5),
                    )
                )
            except OSError:
                pass  # unwritable log dir; console (if any) still works

        if console:
            handlers.append(logging.StreamHandler(sys.stdout))

        for handler in handlers:
            handler.setLevel(level)
            handler.setFormatter(formatter)
        return handlers

    def attach(self, logger: logging.Logger, level: int, console: bool, to_file: bool) -> None:
        with self._lock:
            if self.listener is None:
                handlers = self._build_handlers(level, console, to_file)
                if handlers:
                    self.queue = SimpleQueue()
                    self.listener = QueueListener(self.queue, *handlers, respect_handler_level=True)
                    self.listener.start()
                    atexit.register(self.stop)

        if self.queue is None:
            logger.addHandler(logging.NullHandler())
            return

        handler = QueueHandler(self.queue)
        handler.setLevel(level)
        handler.addFilter(ConferenceContextFilter())
        logger.addHandler(handler)

    def stop(self) -> None:
        with self._lock:
            if self.listener is not None:
                self.listener.stop()
            self.listener = None
            self.queue = None


_sink = _LogSink()


def setup_logging(
    module_name: str,
    log_level: str | None = None,
    include_console: bool | None = None,
    include_file: bool = True,
) -> logging.Logger:
    """Return the logger for ``module_name`` wired to the shared bridge sink.

    Args:
        module_name: Name of the module (usually __name__)
        log_level: DEBUG, INFO, WARNING or ERROR. Defaults to
            MATILDA_BRIDGE_LOG_LEVEL, then INFO.
        include_console: Mirror records to stdout. If None, follows
            MATILDA_BRIDGE_CONSOLE_LOGS.
        include_file: Write to the rotating file in the log directory

    The first call decides which handlers the shared sink gets; later calls
    only attach their logger to it.
    """
    logger = logging.getLogger(module_name)
    if logger.handlers:
        return logger

    level_name = (log_level or os.environ.get("MATILDA_BRIDGE_LOG_LEVEL") or "INFO").upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO
    if include_console is None:
        include_console = _env_flag("MATILDA_BRIDGE_CONSOLE_LOGS")

    logger.setLevel(level)
    # The sink already reaches stdout; root propagation would print twice
    logger.propagate = False
    _sink.attach(logger, level, include_console, include_file)
    return logger


def get_logger(module_name: str) -> logging.Logger:
    """Logger with the default bridge settings."""
    return setup_logging(module_name)


__all__ = [
    "ConferenceContextFilter",
    "bind_conference",
    "current_conference",
    "get_logger",
    "setup_logging",
    "unbind_conference",
]
