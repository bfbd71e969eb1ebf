"""Enumerations for the reconciliation engine."""

from enum import Enum


class DiscrepancyKind(str, Enum):
    """
    Category of a flagged mismatch.

    UNMATCHED: Sale without payment, or payment without sale
    COMMISSION_MISMATCH: Recorded commission differs from the channel's rate
    TAX_MISMATCH: Recorded tax differs from the expected tax rate
    TOLERANCE_EXCEEDED: Settled amount differs from the sale's net amount
    BREAKDOWN_MISMATCH: net != gross - commission - tax - refund
    """
    UNMATCHED = "unmatched"
    COMMISSION_MISMATCH = "commission_mismatch"
    TAX_MISMATCH = "tax_mismatch"
    TOLERANCE_EXCEEDED = "tolerance_exceeded"
    BREAKDOWN_MISMATCH = "breakdown_mismatch"


class Severity(str, Enum):
    """Severity of a discrepancy."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.LOW: 1,
    Severity.MEDIUM: 2,
    Severity.HIGH: 3,
}


class AlertType(str, Enum):
    """Type of top-level alert."""
    CRITICAL = "critical"
    WARNING = "warning"


class InsightType(str, Enum):
    """Type of reconciliation insight."""
    ALERT = "alert"
    SUGGESTION = "suggestion"


class InsightPriority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class AuditAction(str, Enum):
    """Type of audit action."""
    INPUT_NORMALIZED = "input_normalized"
    ROWS_REJECTED = "rows_rejected"
    RECORDS_MATCHED = "records_matched"
    CHUNK_EVALUATED = "chunk_evaluated"
    EVALUATION_SKIPPED = "evaluation_skipped"
    ALERTS_RAISED = "alerts_raised"
    REPORT_COMPLETED = "report_completed"
