"""Exceptions raised by the reconciliation engine."""

from typing import Any, Dict, List, Optional


class ReconciliationError(Exception):
    """Base exception for fatal reconciliation errors."""

    kind = "reconciliation_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Structured form handed back to the caller."""
        return {
            "kind": self.kind,
            "message": self.message,
            "details": self.details,
        }


class InvalidInputError(ReconciliationError):
    """Input is empty or structurally unrecognizable."""

    kind = "invalid_input"

    def __init__(
        self,
        message: str,
        side: Optional[str] = None,
        missing_columns: Optional[List[str]] = None,
    ):
        details: Dict[str, Any] = {}
        if side:
            details["side"] = side
        if missing_columns:
            details["missing_columns"] = missing_columns
        super().__init__(message, details)
        self.side = side
        self.missing_columns = missing_columns or []


class ReconciliationCancelled(ReconciliationError):
    """The caller cancelled the run before it completed."""

    kind = "cancelled"


class EvaluationSkipped(Exception):
    """A single item could not be evaluated (e.g. zero net amount)."""

    def __init__(self, reason: str, record_key: str = ""):
        super().__init__(reason)
        self.reason = reason
        self.record_key = record_key
