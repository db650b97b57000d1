# hippocampus/utils/logging_utils.py
import logging
import sys
from typing import Any, Callable, Optional

PACKAGE_LOGGER_NAME = "hippocampus"

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-35s | %(module)s.%(funcName)s:%(lineno)d - %(message)s"


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configures basic root logging for standalone use (scripts, tests).
    When running inside a host runtime prefer attach_host_logger() so records
    end up in the host's own log.
    """
    numeric_level = getattr(logging, log_level.upper(), None)
    if not isinstance(numeric_level, int):
        print(f"Warning: Invalid log level '{log_level}'. Defaulting to INFO.", file=sys.stderr)
        numeric_level = logging.INFO

    root_logger = logging.getLogger()

    # Drop existing handlers to avoid duplicate messages
    if root_logger.hasHandlers():
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))

    root_logger.setLevel(numeric_level)
    root_logger.addHandler(handler)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


class HostLogHandler(logging.Handler):
    """
    Forwards records to a host-provided logger object exposing
    info/warn/error/debug callables. Missing methods fall back to the
    nearest available one.
    """

    def __init__(self, host_logger: Any, level: int = logging.NOTSET):
        super().__init__(level)
        self.host_logger = host_logger
        self.setFormatter(logging.Formatter("%(message)s"))

    def _method(self, *names: str) -> Optional[Callable[..., Any]]:
        for name in names:
            method = getattr(self.host_logger, name, None)
            if callable(method):
                return method
        return None

    def emit(self, record: logging.LogRecord) -> None:
        if record.levelno >= logging.ERROR:
            method = self._method("error", "warn", "warning", "info")
        elif record.levelno >= logging.WARNING:
            method = self._method("warn", "warning", "info")
        elif record.levelno >= logging.INFO:
            method = self._method("info")
        else:
            method = self._method("debug", "info")

        if method is None:
            return
        try:
            method(self.format(record))
        except Exception:
            self.handleError(record)


def attach_host_logger(host_logger: Any, debug: bool = False) -> logging.Logger:
    """
    Route the package logger to the host's logger. DEBUG records are only
    emitted when debug is enabled.
    """
    package_logger = logging.getLogger(PACKAGE_LOGGER_NAME)
    package_logger.setLevel(logging.DEBUG if debug else logging.INFO)

    for handler in package_logger.handlers[:]:
        if isinstance(handler, HostLogHandler):
            package_logger.removeHandler(handler)

    if host_logger is not None:
        package_logger.addHandler(HostLogHandler(host_logger))
        package_logger.propagate = False
    else:
        package_logger.propagate = True

    return package_logger
