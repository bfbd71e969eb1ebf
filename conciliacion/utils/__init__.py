"""Utility modules."""

from .audit_logger import AuditLogger
from .export import report_to_csv, report_to_json

__all__ = ["AuditLogger", "report_to_csv", "report_to_json"]
