"""Audit logging package."""

from trove.audit.logger import AuditLogger, configure_logging

__all__ = ["AuditLogger", "configure_logging"]
