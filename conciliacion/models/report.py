"""Reconciliation result models."""

import json
from dataclasses import dataclass, field
from decimal import Decimal
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

from .enums import (
    AlertType,
    AuditAction,
    DiscrepancyKind,
    InsightPriority,
    InsightType,
    Severity,
)


@dataclass(frozen=True)
class Discrepancy:
    """A flagged mismatch. Created fresh per run, never mutated."""
    kind: DiscrepancyKind
    severity: Severity
    amount_delta: Decimal
    confidence: float
    explanation: str
    suggested_action: str
    channel_id: str = ""
    order_id: Optional[str] = None
    reference_id: Optional[str] = None

    @property
    def record_key(self) -> str:
        return self.order_id or self.reference_id or ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "severity": self.severity.value,
            "amount_delta": str(self.amount_delta),
            "confidence": self.confidence,
            "explanation": self.explanation,
            "suggested_action": self.suggested_action,
            "channel_id": self.channel_id,
            "order_id": self.order_id,
            "reference_id": self.reference_id,
        }


@dataclass(frozen=True)
class Alert:
    """Top-level alert shown to the user."""
    type: AlertType
    message: str
    action: str
    amount_delta: Decimal = Decimal("0.00")
    channel_id: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "message": self.message,
            "action": self.action,
            "amount_delta": str(self.amount_delta),
            "channel_id": self.channel_id,
        }


@dataclass(frozen=True)
class Insight:
    """Actionable observation derived from the run's totals."""
    type: InsightType
    title: str
    description: str
    action: str
    priority: InsightPriority

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "title": self.title,
            "description": self.description,
            "action": self.action,
            "priority": self.priority.value,
        }


@dataclass(frozen=True)
class ChannelTotals:
    """Per-channel rollup."""
    channel_id: str
    sales_count: int = 0
    payments_count: int = 0
    net_sales: Decimal = Decimal("0.00")
    total_payments: Decimal = Decimal("0.00")
    commissions: Decimal = Decimal("0.00")
    discrepancy_amount: Decimal = Decimal("0.00")
    discrepancy_count: int = 0

    @property
    def discrepancy_rate(self) -> Decimal:
        """Discrepant amount as a fraction of net sales."""
        if self.net_sales <= 0:
            return Decimal("0")
        return (self.discrepancy_amount / self.net_sales).quantize(Decimal("0.0001"))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "channel_id": self.channel_id,
            "sales_count": self.sales_count,
            "payments_count": self.payments_count,
            "net_sales": str(self.net_sales),
            "total_payments": str(self.total_payments),
            "commissions": str(self.commissions),
            "discrepancy_amount": str(self.discrepancy_amount),
            "discrepancy_count": self.discrepancy_count,
            "discrepancy_rate": str(self.discrepancy_rate),
        }


@dataclass(frozen=True)
class AuditEntry:
    """
    An entry in the run's audit trail.

    Carries no ids or timestamps so identical runs produce identical trails.
    """
    action: AuditAction
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)
    success: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action.value,
            "message": self.message,
            "details": self.details,
            "success": self.success,
        }


@dataclass(frozen=True)
class ReconciliationReport:
    """Complete, immutable result of a reconciliation run."""
    accuracy_rate: Decimal
    discrepancies: Tuple[Discrepancy, ...] = ()
    alerts: Tuple[Alert, ...] = ()
    insights: Tuple[Insight, ...] = ()
    per_channel_totals: Mapping[str, ChannelTotals] = field(
        default_factory=lambda: MappingProxyType({})
    )

    # Totals
    total_sales_amount: Decimal = Decimal("0.00")
    total_payments_amount: Decimal = Decimal("0.00")
    discrepant_amount: Decimal = Decimal("0.00")

    # Counts
    matched_count: int = 0
    unmatched_sales_count: int = 0
    unmatched_payments_count: int = 0

    # Row-level and evaluation errors
    errors: int = 0
    error_details: Tuple[str, ...] = ()

    # Audit
    audit_log: Tuple[AuditEntry, ...] = ()

    @property
    def discrepancy_count(self) -> int:
        return len(self.discrepancies)

    @property
    def critical_alerts(self) -> Tuple[Alert, ...]:
        return tuple(a for a in self.alerts if a.type == AlertType.CRITICAL)

    def discrepancies_by_kind(self, kind: DiscrepancyKind) -> Tuple[Discrepancy, ...]:
        return tuple(d for d in self.discrepancies if d.kind == kind)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "accuracy_rate": str(self.accuracy_rate),
            "total_sales_amount": str(self.total_sales_amount),
            "total_payments_amount": str(self.total_payments_amount),
            "discrepant_amount": str(self.discrepant_amount),
            "matched_count": self.matched_count,
            "unmatched_sales_count": self.unmatched_sales_count,
            "unmatched_payments_count": self.unmatched_payments_count,
            "errors": self.errors,
            "error_details": list(self.error_details),
            "discrepancies": [d.to_dict() for d in self.discrepancies],
            "alerts": [a.to_dict() for a in self.alerts],
            "insights": [i.to_dict() for i in self.insights],
            "per_channel_totals": {
                channel: self.per_channel_totals[channel].to_dict()
                for channel in sorted(self.per_channel_totals)
            },
            "audit_log": [e.to_dict() for e in self.audit_log],
        }

    def to_json(self, indent: Optional[int] = 2) -> str:
        """Deterministic JSON rendering."""
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False, sort_keys=True)
