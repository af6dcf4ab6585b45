"""
Core Module

Configuration and logging shared by every package of the voice server.
"""

from .logger import SessionLoggerAdapter, get_logger, get_session_logger, set_log_level, setup_logging
from .settings import Settings, get_allowed_origins, get_settings

__all__ = [
    "SessionLoggerAdapter",
    "Settings",
    "get_allowed_origins",
    "get_logger",
    "get_session_logger",
    "get_settings",
    "set_log_level",
    "setup_logging",
]
