"""
observability/ — structlog setup and session-bound loggers.
"""

from alertsleuth.observability.logger import bind_session, clear_session, get_logger, setup_logging

__all__ = ["setup_logging", "get_logger", "bind_session", "clear_session"]
