"""
Tests for the report aggregator.
"""

import pytest
from datetime import date
from decimal import Decimal

from conciliacion.config import ToleranceConfig
from conciliacion.models import (
    AlertType,
    Discrepancy,
    DiscrepancyKind,
    InsightType,
    PaymentRecord,
    SaleRecord,
    Severity,
)
from conciliacion.reconciliation.aggregator import (
    ReportAggregator,
    aggregate,
    rank_discrepancies,
)


def sale(order_id, net, channel="ml", commission="0.00"):
    return SaleRecord(
        order_id=order_id,
        channel_id=channel,
        date=date(2024, 1, 1),
        net_amount=Decimal(net),
        gross_amount=Decimal(net) + Decimal(commission),
        commission_amount=Decimal(commission),
    )


def payment(reference_id, amount, channel="ml"):
    return PaymentRecord(
        reference_id=reference_id,
        channel_id=channel,
        date=date(2024, 1, 1),
        amount=Decimal(amount),
    )


def discrepancy(delta, severity=Severity.LOW, kind=DiscrepancyKind.TOLERANCE_EXCEEDED,
                channel="ml", order_id="A1", reference_id=None):
    return Discrepancy(
        kind=kind,
        severity=severity,
        amount_delta=Decimal(delta),
        confidence=80.0,
        explanation="test",
        suggested_action="review",
        channel_id=channel,
        order_id=order_id,
        reference_id=reference_id,
    )


@pytest.fixture
def aggregator():
    return ReportAggregator(ToleranceConfig(critical_threshold=Decimal("50000")))


class TestAccuracyRate:

    def test_no_discrepancies(self, aggregator):
        report = aggregator.aggregate([], [sale("A1", "100"), sale("A2", "50")], [])
        assert report.accuracy_rate == Decimal("1")

    def test_partial(self, aggregator):
        report = aggregator.aggregate(
            [discrepancy("25.00")],
            [sale("A1", "100"), sale("A2", "100")],
            [],
        )
        assert report.accuracy_rate == Decimal("0.8750")

    def test_clamped_at_zero(self, aggregator):
        report = aggregator.aggregate([discrepancy("500.00")], [sale("A1", "100")], [])
        assert report.accuracy_rate == Decimal("0")

    def test_no_sales(self, aggregator):
        assert ReportAggregator.accuracy_rate(Decimal("0"), Decimal("0")) == Decimal("1")
        assert ReportAggregator.accuracy_rate(Decimal("10"), Decimal("0")) == Decimal("0")


class TestRanking:

    def test_severity_then_amount(self):
        ranked = rank_discrepancies([
            discrepancy("10", Severity.LOW, order_id="a"),
            discrepancy("5", Severity.HIGH, order_id="b"),
            discrepancy("500", Severity.MEDIUM, order_id="c"),
            discrepancy("50", Severity.HIGH, order_id="d"),
        ])
        assert [d.order_id for d in ranked] == ["d", "b", "c", "a"]

    def test_ties_are_deterministic(self):
        items = [
            discrepancy("10", order_id="b"),
            discrepancy("10", order_id="a"),
            discrepancy("10", channel="fal", order_id="z"),
        ]
        assert rank_discrepancies(items) == rank_discrepancies(list(reversed(items)))
        assert [d.order_id for d in rank_discrepancies(items)] == ["z", "a", "b"]


class TestAlerts:

    def test_scenario_critical_alert(self, aggregator):
        report = aggregator.aggregate(
            [discrepancy("75000", Severity.HIGH, kind=DiscrepancyKind.UNMATCHED)],
            [sale("A1", "75000")],
            [],
        )

        assert len(report.alerts) == 1
        assert report.alerts[0].type == AlertType.CRITICAL
        assert report.alerts[0].amount_delta == Decimal("75000")
        assert report.critical_alerts == report.alerts

    def test_threshold_is_exclusive(self, aggregator):
        report = aggregator.aggregate([discrepancy("50000", Severity.HIGH)], [sale("A1", "1")], [])
        assert report.alerts == ()

    def test_large_non_high_discrepancy_is_warning(self, aggregator):
        report = aggregator.aggregate([discrepancy("60000", Severity.MEDIUM)], [sale("A1", "1")], [])
        assert [a.type for a in report.alerts] == [AlertType.WARNING]

    def test_alerts_ordered_by_amount(self, aggregator):
        report = aggregator.aggregate(
            [
                discrepancy("60000", Severity.HIGH, order_id="a"),
                discrepancy("90000", Severity.MEDIUM, order_id="b"),
                discrepancy("70000", Severity.HIGH, order_id="c"),
            ],
            [sale("A1", "1000000")],
            [],
        )
        assert [a.amount_delta for a in report.alerts] == [
            Decimal("90000"), Decimal("70000"), Decimal("60000"),
        ]
        assert report.alerts[0].type == AlertType.WARNING


class TestChannelTotals:

    def test_grouped_by_channel(self, aggregator):
        report = aggregator.aggregate(
            [
                discrepancy("10", channel="ml"),
                discrepancy("30", channel="ml", order_id="A2"),
                discrepancy("40", channel="fal", kind=DiscrepancyKind.UNMATCHED,
                            order_id=None, reference_id="P1"),
            ],
            [sale("A1", "100", commission="10"), sale("A2", "200"), sale("F1", "400", channel="fal")],
            [payment("A1", "90"), payment("P1", "40", channel="fal")],
        )

        ml = report.per_channel_totals["ml"]
        assert ml.sales_count == 2
        assert ml.payments_count == 1
        assert ml.net_sales == Decimal("300")
        assert ml.total_payments == Decimal("90")
        assert ml.commissions == Decimal("10")
        assert ml.discrepancy_amount == Decimal("40")
        assert ml.discrepancy_count == 2
        assert ml.discrepancy_rate == Decimal("0.1333")

        fal = report.per_channel_totals["fal"]
        assert fal.discrepancy_count == 1
        assert list(report.per_channel_totals) == ["fal", "ml"]
        assert report.unmatched_payments_count == 1
        assert report.unmatched_sales_count == 0


class TestInsights:

    def test_clean_run_has_no_insights(self, aggregator):
        report = aggregator.aggregate([], [sale("A1", "100")], [payment("A1", "100")])
        assert report.insights == ()

    def test_low_accuracy_and_lagging_payments(self, aggregator):
        report = aggregator.aggregate(
            [discrepancy("40", kind=DiscrepancyKind.UNMATCHED, order_id=None, reference_id="P1")],
            [sale("A1", "100")],
            [payment("P1", "40")],
        )

        titles = [i.title for i in report.insights]
        assert "Accuracy below target" in titles
        assert "Channel ml above tolerance" in titles
        assert report.insights[-1].type == InsightType.SUGGESTION


class TestReportSerialization:

    def test_report_is_immutable(self, aggregator):
        report = aggregate([discrepancy("10")], [sale("A1", "100")], [])
        with pytest.raises(AttributeError):
            report.accuracy_rate = Decimal("1")
        with pytest.raises(TypeError):
            report.per_channel_totals["x"] = None

    def test_to_dict_uses_strings_for_money(self, aggregator):
        data = aggregator.aggregate([discrepancy("10.50")], [sale("A1", "100")], []).to_dict()

        assert data["discrepancies"][0]["amount_delta"] == "10.50"
        assert data["discrepancies"][0]["kind"] == "tolerance_exceeded"
        assert data["per_channel_totals"]["ml"]["net_sales"] == "100.00"
