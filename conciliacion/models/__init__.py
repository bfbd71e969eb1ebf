"""Data models for the reconciliation engine."""

from .enums import (
    AlertType,
    AuditAction,
    DiscrepancyKind,
    InsightPriority,
    InsightType,
    Severity,
)
from .records import (
    SaleRecord,
    PaymentRecord,
    MatchedPair,
    MatchResult,
)
from .report import (
    Discrepancy,
    Alert,
    Insight,
    ChannelTotals,
    AuditEntry,
    ReconciliationReport,
)

__all__ = [
    # Enums
    "AlertType",
    "AuditAction",
    "DiscrepancyKind",
    "InsightPriority",
    "InsightType",
    "Severity",
    # Records
    "SaleRecord",
    "PaymentRecord",
    "MatchedPair",
    "MatchResult",
    # Report
    "Discrepancy",
    "Alert",
    "Insight",
    "ChannelTotals",
    "AuditEntry",
    "ReconciliationReport",
]
