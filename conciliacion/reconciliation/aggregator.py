"""
Aggregator/Reporter - rolls discrepancies up into a ReconciliationReport.

Computes the accuracy rate, per-channel totals, the ranked discrepancy list,
critical/warning alerts and a short list of insights.
"""

from collections import defaultdict
from decimal import ROUND_HALF_EVEN, Decimal
from types import MappingProxyType
from typing import Dict, Iterable, List, Optional, Sequence

import structlog

from ..config import ToleranceConfig
from ..models import (
    Alert,
    AlertType,
    AuditEntry,
    ChannelTotals,
    Discrepancy,
    DiscrepancyKind,
    Insight,
    InsightPriority,
    InsightType,
    PaymentRecord,
    ReconciliationReport,
    SaleRecord,
    Severity,
)

logger = structlog.get_logger()

RATE_PLACES = Decimal("0.0001")
ZERO = Decimal("0.00")


def rank_discrepancies(discrepancies: Iterable[Discrepancy]) -> List[Discrepancy]:
    """
    Order by (severity desc, amount_delta desc).

    Ties fall back to channel, record key and kind so identical inputs
    always rank identically.
    """
    return sorted(
        discrepancies,
        key=lambda d: (
            -d.severity.rank,
            -d.amount_delta,
            d.channel_id,
            d.order_id or "",
            d.reference_id or "",
            d.kind.value,
        ),
    )


class ReportAggregator:
    """Builds the final, immutable report for a run."""

    def __init__(self, rules: Optional[ToleranceConfig] = None):
        self.rules = rules or ToleranceConfig()

    def aggregate(
        self,
        discrepancies: Sequence[Discrepancy],
        sales: Sequence[SaleRecord],
        payments: Sequence[PaymentRecord],
        matched_count: int = 0,
        errors: int = 0,
        error_details: Sequence[str] = (),
        audit_log: Sequence[AuditEntry] = (),
    ) -> ReconciliationReport:
        """
        Aggregate a run into a report.

        Args:
            discrepancies: Everything the evaluator flagged
            sales: All normalized sales of the run
            payments: All normalized payments of the run
            matched_count: Number of matched pairs
            errors: Rejected rows plus skipped evaluations
            error_details: Short description per error
            audit_log: Audit trail of the run so far

        Returns:
            ReconciliationReport
        """
        ranked = rank_discrepancies(discrepancies)

        total_sales = sum((s.net_amount for s in sales), ZERO)
        total_payments = sum((p.amount for p in payments), ZERO)
        discrepant = sum((d.amount_delta for d in ranked), ZERO)

        accuracy = self.accuracy_rate(discrepant, total_sales)
        per_channel = self._channel_totals(ranked, sales, payments)
        alerts = self._build_alerts(ranked)

        unmatched = [d for d in ranked if d.kind == DiscrepancyKind.UNMATCHED]
        unmatched_sales = sum(1 for d in unmatched if d.order_id is not None)

        insights = self._build_insights(
            accuracy,
            per_channel,
            unmatched_payments=len(unmatched) - unmatched_sales,
        )

        logger.info(
            "Report aggregated",
            accuracy_rate=str(accuracy),
            discrepancies=len(ranked),
            alerts=len(alerts),
            channels=len(per_channel),
        )

        return ReconciliationReport(
            accuracy_rate=accuracy,
            discrepancies=tuple(ranked),
            alerts=tuple(alerts),
            insights=tuple(insights),
            per_channel_totals=MappingProxyType(per_channel),
            total_sales_amount=total_sales,
            total_payments_amount=total_payments,
            discrepant_amount=discrepant,
            matched_count=matched_count,
            unmatched_sales_count=unmatched_sales,
            unmatched_payments_count=len(unmatched) - unmatched_sales,
            errors=errors,
            error_details=tuple(error_details),
            audit_log=tuple(audit_log),
        )

    @staticmethod
    def accuracy_rate(discrepant: Decimal, total_sales: Decimal) -> Decimal:
        """1 - discrepant / total sales, clamped to [0, 1]."""
        if total_sales <= 0:
            return Decimal("1.0000") if discrepant == 0 else Decimal("0.0000")

        rate = Decimal(1) - discrepant / total_sales
        rate = min(Decimal(1), max(Decimal(0), rate))
        return rate.quantize(RATE_PLACES, rounding=ROUND_HALF_EVEN)

    def _channel_totals(
        self,
        discrepancies: Sequence[Discrepancy],
        sales: Sequence[SaleRecord],
        payments: Sequence[PaymentRecord],
    ) -> Dict[str, ChannelTotals]:
        acc = defaultdict(lambda: {
            "sales_count": 0,
            "payments_count": 0,
            "net_sales": ZERO,
            "total_payments": ZERO,
            "commissions": ZERO,
            "discrepancy_amount": ZERO,
            "discrepancy_count": 0,
        })

        for sale in sales:
            totals = acc[sale.channel_id]
            totals["sales_count"] += 1
            totals["net_sales"] += sale.net_amount
            totals["commissions"] += sale.commission_amount

        for payment in payments:
            totals = acc[payment.channel_id]
            totals["payments_count"] += 1
            totals["total_payments"] += payment.amount

        for discrepancy in discrepancies:
            totals = acc[discrepancy.channel_id]
            totals["discrepancy_count"] += 1
            totals["discrepancy_amount"] += discrepancy.amount_delta

        return {
            channel: ChannelTotals(channel_id=channel, **acc[channel])
            for channel in sorted(acc)
        }

    def _build_alerts(self, ranked: Sequence[Discrepancy]) -> List[Alert]:
        """
        HIGH discrepancies above the critical threshold are critical; other
        discrepancies above it are warnings. Largest amounts first.
        """
        threshold = self.rules.critical_threshold
        alerts = []

        # sorted() is stable, so equal amounts keep their ranked order
        for d in sorted(ranked, key=lambda d: -d.amount_delta):
            if d.amount_delta <= threshold:
                continue
            alert_type = AlertType.CRITICAL if d.severity == Severity.HIGH else AlertType.WARNING
            alerts.append(Alert(
                type=alert_type,
                message=f"{d.kind.value.replace('_', ' ').capitalize()} of {d.amount_delta} "
                        f"on channel {d.channel_id}: {d.explanation}",
                action=d.suggested_action,
                amount_delta=d.amount_delta,
                channel_id=d.channel_id,
            ))

        return alerts

    def _build_insights(
        self,
        accuracy: Decimal,
        per_channel: Dict[str, ChannelTotals],
        unmatched_payments: int,
    ) -> List[Insight]:
        insights = []

        if accuracy < self.rules.accuracy_target:
            insights.append(Insight(
                type=InsightType.ALERT,
                title="Accuracy below target",
                description=(
                    f"Only {accuracy * 100:.2f}% of sales value reconciled "
                    f"(target {self.rules.accuracy_target * 100:.2f}%)"
                ),
                action="Review the highest-severity discrepancies first",
                priority=InsightPriority.HIGH,
            ))

        over_tolerance = [
            t for t in per_channel.values()
            if t.net_sales > 0 and t.discrepancy_rate > self.rules.tolerance_pct
        ]
        if over_tolerance:
            worst = max(over_tolerance, key=lambda t: (t.discrepancy_rate, t.channel_id))
            insights.append(Insight(
                type=InsightType.ALERT,
                title=f"Channel {worst.channel_id} above tolerance",
                description=(
                    f"{worst.discrepancy_count} discrepancies worth {worst.discrepancy_amount} "
                    f"({worst.discrepancy_rate * 100:.2f}% of net sales)"
                ),
                action=f"Audit the {worst.channel_id} settlement reports",
                priority=InsightPriority.MEDIUM,
            ))

        if unmatched_payments:
            insights.append(Insight(
                type=InsightType.SUGGESTION,
                title="Payments without a recognized sale",
                description=(
                    f"{unmatched_payments} payments could not be linked to a sale; "
                    f"they may belong to orders not yet imported"
                ),
                action="Re-run the reconciliation after the next sales import",
                priority=InsightPriority.LOW,
            ))

        return insights


def aggregate(
    discrepancies: Sequence[Discrepancy],
    sales: Sequence[SaleRecord],
    payments: Sequence[PaymentRecord],
    rules: Optional[ToleranceConfig] = None,
    **kwargs,
) -> ReconciliationReport:
    """Roll discrepancies up into a report."""
    return ReportAggregator(rules).aggregate(discrepancies, sales, payments, **kwargs)
