"""
Tests for the sale/payment matcher.
"""

import pytest
from datetime import date
from decimal import Decimal

from conciliacion.models import PaymentRecord, SaleRecord
from conciliacion.reconciliation.matcher import RecordMatcher, match


def sale(order_id, channel="ml", day=1, net="100.00", row=0):
    return SaleRecord(
        order_id=order_id,
        channel_id=channel,
        date=date(2024, 1, day),
        net_amount=Decimal(net),
        gross_amount=Decimal(net),
        source_row=row,
    )


def payment(reference_id, channel="ml", day=1, amount="100.00", row=0):
    return PaymentRecord(
        reference_id=reference_id,
        channel_id=channel,
        date=date(2024, 1, day),
        amount=Decimal(amount),
        source_row=row,
    )


@pytest.fixture
def matcher():
    return RecordMatcher()


class TestRecordMatcher:
    """Test suite for the matcher."""

    def test_exact_key_match(self, matcher):
        result = matcher.match([sale("A1")], [payment("A1", day=3)])

        assert len(result.matched) == 1
        assert result.matched[0].sale.order_id == "A1"
        assert result.matched[0].payment.reference_id == "A1"
        assert result.matched[0].days_apart == 2
        assert result.unmatched_sales == []
        assert result.unmatched_payments == []

    def test_channel_is_part_of_the_key(self, matcher):
        result = matcher.match([sale("A1", channel="ml")], [payment("A1", channel="falabella")])

        assert result.matched == []
        assert [s.order_id for s in result.unmatched_sales] == ["A1"]
        assert [p.reference_id for p in result.unmatched_payments] == ["A1"]

    def test_no_fuzzy_matching(self, matcher):
        result = matcher.match([sale("A1")], [payment("a1"), payment("A1 ")])

        assert result.matched == []
        assert len(result.unmatched_payments) == 2

    def test_payment_without_reference_is_unmatched(self, matcher):
        result = matcher.match([sale("A1")], [payment(""), payment("A1")])

        assert len(result.matched) == 1
        assert len(result.unmatched_payments) == 1
        assert result.unmatched_payments[0].reference_id == ""

    def test_multiple_payments_pair_earliest_first(self, matcher):
        sales = [sale("A1", day=5, row=0)]
        payments = [
            payment("A1", day=9, amount="60.00", row=0),
            payment("A1", day=6, amount="40.00", row=1),
        ]

        result = matcher.match(sales, payments)

        assert len(result.matched) == 1
        assert result.matched[0].payment.date == date(2024, 1, 6)
        assert [p.date for p in result.unmatched_payments] == [date(2024, 1, 9)]

    def test_multiple_sales_pair_earliest_first(self, matcher):
        sales = [sale("A1", day=4, row=0), sale("A1", day=2, row=1), sale("A1", day=3, row=2)]
        payments = [payment("A1", day=8, row=0), payment("A1", day=7, row=1)]

        result = matcher.match(sales, payments)

        pairs = [(p.sale.date.day, p.payment.date.day) for p in result.matched]
        assert pairs == [(2, 7), (3, 8)]
        assert [s.date.day for s in result.unmatched_sales] == [4]

    def test_same_date_ties_use_input_order(self, matcher):
        sales = [sale("A1", row=1), sale("A1", row=0)]
        payments = [payment("A1", amount="1.00", row=0)]

        result = matcher.match(sales, payments)

        assert result.matched[0].sale.source_row == 0
        assert result.unmatched_sales[0].source_row == 1

    def test_completeness(self, matcher):
        """Every record lands in exactly one group."""
        sales = [sale(f"S{i % 7}", channel=("ml", "fal")[i % 2], day=1 + i % 5, row=i) for i in range(40)]
        payments = [
            payment(f"S{i % 9}", channel=("ml", "fal")[i % 3 == 0], day=1 + i % 4, row=i)
            for i in range(35)
        ] + [payment("", row=99)]

        result = matcher.match(sales, payments)

        matched_sales = [p.sale for p in result.matched]
        matched_payments = [p.payment for p in result.matched]

        assert sorted(s.source_row for s in matched_sales + result.unmatched_sales) == list(range(40))
        assert sorted(
            p.source_row for p in matched_payments + result.unmatched_payments
        ) == list(range(35)) + [99]
        assert result.total_sales == 40
        assert result.total_payments == 36

    def test_deterministic_for_identical_input(self):
        sales = [sale("B", row=0), sale("A", row=1), sale("A", day=2, row=2)]
        payments = [payment("A", day=3, row=0), payment("C", row=1)]

        first = match(sales, payments)
        second = match(list(sales), list(payments))

        assert first == second
