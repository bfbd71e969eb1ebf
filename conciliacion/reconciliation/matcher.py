"""
Matcher - pairs sales with payments.

Join key is (channel_id, order_id) against (channel_id, reference_id),
exact only. When a key has several sales or payments, the earliest sale is
paired with the earliest payment and so on; the surplus stays unmatched.
This 1:1 earliest-first rule is a default, not a confirmed business rule:
the source system never defined how multi-payment orders reconcile.
"""

from typing import List, Sequence, Tuple, TypeVar, Union

import structlog

from ..models import MatchedPair, MatchResult, PaymentRecord, SaleRecord

logger = structlog.get_logger()

Record = Union[SaleRecord, PaymentRecord]
R = TypeVar("R", SaleRecord, PaymentRecord)


class RecordMatcher:
    """
    Sort-merge join of sales and payments.

    Both sides are sorted by (channel, key, date, source row) and walked
    once, so matching is O(n log n).
    """

    def match(
        self,
        sales: Sequence[SaleRecord],
        payments: Sequence[PaymentRecord],
    ) -> MatchResult:
        """
        Pair sales with payments.

        Args:
            sales: Normalized sale records
            payments: Normalized payment records

        Returns:
            MatchResult where every input record appears exactly once
        """
        logger.info("Starting matching", sales=len(sales), payments=len(payments))

        result = MatchResult()

        # Payments without a reference can never join
        keyed_payments = []
        for payment in payments:
            if payment.reference_id:
                keyed_payments.append(payment)
            else:
                result.unmatched_payments.append(payment)

        sorted_sales = sorted(sales, key=self._sort_key)
        sorted_payments = sorted(keyed_payments, key=self._sort_key)

        i = j = 0
        while i < len(sorted_sales) and j < len(sorted_payments):
            sale_group_key = self._join_key(sorted_sales[i])
            payment_group_key = self._join_key(sorted_payments[j])

            if sale_group_key < payment_group_key:
                i, group = self._take_group(sorted_sales, i)
                result.unmatched_sales.extend(group)
            elif payment_group_key < sale_group_key:
                j, group = self._take_group(sorted_payments, j)
                result.unmatched_payments.extend(group)
            else:
                i, sale_group = self._take_group(sorted_sales, i)
                j, payment_group = self._take_group(sorted_payments, j)
                self._pair_group(sale_group, payment_group, result)

        result.unmatched_sales.extend(sorted_sales[i:])
        result.unmatched_payments.extend(sorted_payments[j:])

        logger.info(
            "Matching complete",
            matched=len(result.matched),
            unmatched_sales=len(result.unmatched_sales),
            unmatched_payments=len(result.unmatched_payments),
        )

        return result

    @staticmethod
    def _join_key(record: Record) -> Tuple[str, str]:
        return (record.channel_id, record.key)

    @staticmethod
    def _sort_key(record: Record):
        return (record.channel_id, record.key, record.date, record.source_row)

    def _take_group(self, records: List[R], start: int) -> Tuple[int, List[R]]:
        """Return the run of records sharing the join key at ``start``."""
        key = self._join_key(records[start])
        end = start
        while end < len(records) and self._join_key(records[end]) == key:
            end += 1
        return end, records[start:end]

    @staticmethod
    def _pair_group(
        sale_group: List[SaleRecord],
        payment_group: List[PaymentRecord],
        result: MatchResult,
    ) -> None:
        """Pair a key group earliest-first; surplus is unmatched."""
        pairs = min(len(sale_group), len(payment_group))
        for sale, payment in zip(sale_group[:pairs], payment_group[:pairs]):
            result.matched.append(MatchedPair(sale=sale, payment=payment))

        if len(sale_group) > pairs:
            logger.debug(
                "Surplus sales for key",
                channel_id=sale_group[0].channel_id,
                order_id=sale_group[0].order_id,
                surplus=len(sale_group) - pairs,
            )
        if len(payment_group) > pairs:
            logger.debug(
                "Surplus payments for key",
                channel_id=payment_group[0].channel_id,
                reference_id=payment_group[0].reference_id,
                surplus=len(payment_group) - pairs,
            )

        result.unmatched_sales.extend(sale_group[pairs:])
        result.unmatched_payments.extend(payment_group[pairs:])


def match(
    sales: Sequence[SaleRecord],
    payments: Sequence[PaymentRecord],
) -> MatchResult:
    """Pair sales with payments by (channel, order/reference id)."""
    return RecordMatcher().match(sales, payments)
