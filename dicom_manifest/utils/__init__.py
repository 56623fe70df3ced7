"""Logging utilities."""

from .logger import AuditEventLogger, configure_logging, get_logger

__all__ = ["AuditEventLogger", "configure_logging", "get_logger"]
