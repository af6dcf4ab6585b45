"""
Centralized logging configuration for the avatar voice server.

Provides a configured logger instance with a single stdout handler shared
by the application and uvicorn.
"""

import logging
import sys

# Global log level - can be controlled via environment
_log_level: int | None = None


def setup_logging(level: str = "INFO") -> None:
    """
    Setup logging configuration for the application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    global _log_level

    numeric_level = getattr(logging, level.upper(), logging.INFO)
    _log_level = numeric_level

    root_logger = logging.getLogger()

    # Remove all existing handlers to prevent duplication
    while root_logger.handlers:
        root_logger.removeHandler(root_logger.handlers[0])

    root_logger.setLevel(numeric_level)

    handler = logging.StreamHandler(sys.stdout)
    formatter = logging.Formatter(fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    # Route uvicorn through the root handler
    for logger_name in ["uvicorn", "uvicorn.error", "uvicorn.access"]:
        log = logging.getLogger(logger_name)
        log.handlers = []
        log.propagate = True

    # Poll requests arrive several times per second; keep access logs quiet
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.error").setLevel(logging.INFO)

    noisy_loggers = [
        "httpcore",
        "httpx",
        "multipart",
        "asyncio",
    ]

    for logger_name in noisy_loggers:
        logging.getLogger(logger_name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for the specified module.

    Args:
        name: Module name (typically __name__)

    Returns:
        Configured logger instance
    """
    return logging.getLogger(name)


def set_log_level(level: str) -> None:
    """
    Change the log level at runtime.

    Args:
        level: New logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    global _log_level

    numeric_level = getattr(logging, level.upper(), logging.INFO)
    _log_level = numeric_level

    logging.getLogger().setLevel(numeric_level)


class SessionLoggerAdapter(logging.LoggerAdapter):
    """
    Tags every record with the voice session it belongs to.

    Messages are prefixed with ``[session <id>]`` and the id is exposed as
    ``record.session_id`` for handlers that want to filter on it.
    """

    def process(self, msg, kwargs):
        session_id = self.extra["session_id"]
        extra = kwargs.setdefault("extra", {})
        extra.setdefault("session_id", session_id)
        return f"[session {session_id}] {msg}", kwargs


def get_session_logger(logger: logging.Logger, session_id: str) -> SessionLoggerAdapter:
    """Wrap a module logger so its messages carry a session id."""
    return SessionLoggerAdapter(logger, {"session_id": session_id})
