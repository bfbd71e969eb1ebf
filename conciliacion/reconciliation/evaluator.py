"""
Discrepancy Evaluator - classifies matched pairs and unmatched records.

Matched pairs are checked against the tolerance rules, unmatched records are
always reported, and each sale's own breakdown (net, commission, tax) is
checked against the expected figures. Confidence is a weighted heuristic over
corroborating signals; the weights live in ToleranceConfig.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_EVEN, Decimal
from typing import Iterable, List, Optional, Sequence, Tuple, Union

import structlog

from ..config import ToleranceConfig
from ..exceptions import EvaluationSkipped
from ..models import (
    Discrepancy,
    DiscrepancyKind,
    MatchedPair,
    PaymentRecord,
    SaleRecord,
    Severity,
)

logger = structlog.get_logger()

CENTS = Decimal("0.01")

Evaluable = Union[MatchedPair, SaleRecord, PaymentRecord]


@dataclass
class EvaluationResult:
    """Result of evaluating a batch of items."""
    discrepancies: List[Discrepancy] = field(default_factory=list)
    skipped: int = 0
    skipped_details: List[str] = field(default_factory=list)


class DiscrepancyEvaluator:
    """
    Turns matcher output into Discrepancy objects.

    Severity rules:
    - Matched pair over tolerance: LOW, MEDIUM above medium_multiplier x
      tolerance, HIGH above high_multiplier x tolerance
    - Unmatched sale: HIGH (money expected, never received)
    - Unmatched payment: MEDIUM (possibly a data-lag false positive)
    - Anything above critical_threshold is HIGH regardless of the above

    Confidence signals:
    - key: exact key match (pairs) or a usable key (unmatched records)
    - date: same-day settlement scores 1, decaying to 0 at lookback_days;
      for unmatched records, age relative to the latest date on the other side
    - commission: implied commission rate close to the channel's typical rate
    """

    def __init__(
        self,
        rules: ToleranceConfig,
        latest_sale_date: Optional[date] = None,
        latest_payment_date: Optional[date] = None,
    ):
        self.rules = rules
        self.latest_sale_date = latest_sale_date
        self.latest_payment_date = latest_payment_date

    def evaluate(self, item: Evaluable) -> Optional[Discrepancy]:
        """
        Evaluate a matched pair, an unmatched sale or an unmatched payment.

        Returns:
            A Discrepancy, or None when a matched pair is within tolerance

        Raises:
            EvaluationSkipped: the item cannot be evaluated (zero net amount)
        """
        if isinstance(item, MatchedPair):
            return self._evaluate_pair(item)
        if isinstance(item, SaleRecord):
            return self._evaluate_unmatched_sale(item)
        if isinstance(item, PaymentRecord):
            return self._evaluate_unmatched_payment(item)
        raise EvaluationSkipped(f"unsupported item type: {type(item).__name__}")

    def check_breakdown(self, sale: SaleRecord) -> List[Discrepancy]:
        """Check a sale's net, commission and tax figures against expectations."""
        found = []

        breakdown = self._check_net_invariant(sale)
        if breakdown:
            found.append(breakdown)

        if sale.gross_amount != 0:
            commission = self._check_commission(sale)
            if commission:
                found.append(commission)
            tax = self._check_tax(sale)
            if tax:
                found.append(tax)

        return found

    def evaluate_batch(
        self,
        matched: Sequence[MatchedPair] = (),
        unmatched_sales: Sequence[SaleRecord] = (),
        unmatched_payments: Sequence[PaymentRecord] = (),
    ) -> EvaluationResult:
        """
        Evaluate a batch. A single bad item is skipped and counted,
        never raised.
        """
        result = EvaluationResult()

        for pair in matched:
            self._collect(result, pair, pair.sale)
        for sale in unmatched_sales:
            self._collect(result, sale, sale)
        for payment in unmatched_payments:
            self._collect(result, payment, None)

        return result

    def _collect(
        self,
        result: EvaluationResult,
        item: Evaluable,
        sale: Optional[SaleRecord],
    ) -> None:
        try:
            discrepancy = self.evaluate(item)
        except (EvaluationSkipped, ArithmeticError) as e:
            key = getattr(e, "record_key", "") or self._describe(item)
            result.skipped += 1
            result.skipped_details.append(f"{key}: {e}")
            logger.warning("Evaluation skipped", record=key, reason=str(e))
            discrepancy = None

        if discrepancy:
            result.discrepancies.append(discrepancy)

        if sale is not None:
            try:
                result.discrepancies.extend(self.check_breakdown(sale))
            except ArithmeticError as e:
                result.skipped += 1
                result.skipped_details.append(f"{self._describe(sale)}: {e}")
                logger.warning("Breakdown check skipped", record=self._describe(sale), reason=str(e))

    def _evaluate_pair(self, pair: MatchedPair) -> Optional[Discrepancy]:
        sale, payment = pair.sale, pair.payment

        if sale.net_amount == 0:
            raise EvaluationSkipped(
                "net amount is zero, relative delta undefined",
                record_key=self._describe(pair),
            )

        delta = pair.delta
        if not self.rules.exceeds_tolerance(delta, sale.net_amount):
            return None

        pct = (delta / abs(sale.net_amount) * 100).quantize(CENTS, rounding=ROUND_HALF_EVEN)
        if payment.amount < sale.net_amount:
            action = (
                f"Request the settlement detail from {sale.channel_id} "
                f"and claim the missing {delta}"
            )
        else:
            action = "Check for duplicated or misallocated payouts before booking the surplus"

        return Discrepancy(
            kind=DiscrepancyKind.TOLERANCE_EXCEEDED,
            severity=self._severity(delta, self.rules.escalation(delta, sale.net_amount)),
            amount_delta=delta,
            confidence=self._pair_confidence(pair),
            explanation=(
                f"Order {sale.order_id} settled {payment.amount} against an "
                f"expected net of {sale.net_amount} (delta {delta}, {pct}%)"
            ),
            suggested_action=action,
            channel_id=sale.channel_id,
            order_id=sale.order_id,
            reference_id=payment.reference_id,
        )

    def _evaluate_unmatched_sale(self, sale: SaleRecord) -> Discrepancy:
        return Discrepancy(
            kind=DiscrepancyKind.UNMATCHED,
            severity=Severity.HIGH,
            amount_delta=abs(sale.net_amount),
            confidence=self._confidence([
                (self.rules.key_weight, 1.0),
                self._age_signal(sale.date, self.latest_payment_date),
            ]),
            explanation=(
                f"Order {sale.order_id} ({sale.net_amount} net) has no matching "
                f"payment on channel {sale.channel_id}"
            ),
            suggested_action=f"Confirm the payout with {sale.channel_id}; the money was never received",
            channel_id=sale.channel_id,
            order_id=sale.order_id,
        )

    def _evaluate_unmatched_payment(self, payment: PaymentRecord) -> Discrepancy:
        if payment.reference_id:
            explanation = (
                f"Payment {payment.reference_id} ({payment.amount}) has no "
                f"recognized sale on channel {payment.channel_id}"
            )
        else:
            explanation = (
                f"Payment of {payment.amount} on channel {payment.channel_id} "
                f"carries no order reference"
            )

        return Discrepancy(
            kind=DiscrepancyKind.UNMATCHED,
            severity=self._unmatched_payment_severity(payment),
            amount_delta=abs(payment.amount),
            confidence=self._confidence([
                (self.rules.key_weight, 1.0 if payment.reference_id else 0.0),
                self._age_signal(payment.date, self.latest_sale_date),
            ]),
            explanation=explanation,
            suggested_action="Check whether the sale is still in transit before escalating",
            channel_id=payment.channel_id,
            reference_id=payment.reference_id or None,
        )

    def _check_net_invariant(self, sale: SaleRecord) -> Optional[Discrepancy]:
        diff = abs(sale.net_amount - sale.expected_net)
        if diff <= self.rules.breakdown_epsilon:
            return None

        return Discrepancy(
            kind=DiscrepancyKind.BREAKDOWN_MISMATCH,
            severity=self._severity(diff, self.rules.escalation(diff, sale.net_amount)),
            amount_delta=diff,
            confidence=100.0,
            explanation=(
                f"Order {sale.order_id} reports net {sale.net_amount} but gross minus "
                f"commission, tax and refunds is {sale.expected_net}"
            ),
            suggested_action="Re-export the order from the channel; the breakdown is inconsistent",
            channel_id=sale.channel_id,
            order_id=sale.order_id,
        )

    def _check_commission(self, sale: SaleRecord) -> Optional[Discrepancy]:
        rate = self.rules.commission_rate_for(sale.channel_id)
        if rate is None:
            return None

        expected = (sale.gross_amount * rate).quantize(CENTS, rounding=ROUND_HALF_EVEN)
        delta = abs(sale.commission_amount - expected)
        if not self.rules.exceeds_tolerance(delta, expected):
            return None

        return Discrepancy(
            kind=DiscrepancyKind.COMMISSION_MISMATCH,
            severity=self._severity(delta, self.rules.escalation(delta, expected)),
            amount_delta=delta,
            confidence=100.0,
            explanation=(
                f"Order {sale.order_id} was charged commission {sale.commission_amount}; "
                f"{sale.channel_id} rate {rate} implies {expected}"
            ),
            suggested_action=f"Dispute the commission with {sale.channel_id} or update its configured rate",
            channel_id=sale.channel_id,
            order_id=sale.order_id,
        )

    def _check_tax(self, sale: SaleRecord) -> Optional[Discrepancy]:
        rate = self.rules.expected_tax_rate
        if rate is None:
            return None

        # Gross is tax-inclusive
        expected = (sale.gross_amount * rate / (1 + rate)).quantize(CENTS, rounding=ROUND_HALF_EVEN)
        delta = abs(sale.tax_amount - expected)
        if not self.rules.exceeds_tolerance(delta, expected):
            return None

        return Discrepancy(
            kind=DiscrepancyKind.TAX_MISMATCH,
            severity=self._severity(delta, self.rules.escalation(delta, expected)),
            amount_delta=delta,
            confidence=100.0,
            explanation=(
                f"Order {sale.order_id} reports tax {sale.tax_amount}; "
                f"a {rate} rate on gross {sale.gross_amount} implies {expected}"
            ),
            suggested_action="Review the tax breakdown before issuing the invoice",
            channel_id=sale.channel_id,
            order_id=sale.order_id,
        )

    def _unmatched_payment_severity(self, payment: PaymentRecord) -> Severity:
        if abs(payment.amount) > self.rules.critical_threshold:
            return Severity.HIGH
        return Severity.MEDIUM

    def _severity(self, delta: Decimal, escalation: Decimal) -> Severity:
        if delta > self.rules.critical_threshold or escalation > self.rules.high_multiplier:
            return Severity.HIGH
        if escalation > self.rules.medium_multiplier:
            return Severity.MEDIUM
        return Severity.LOW

    def _pair_confidence(self, pair: MatchedPair) -> float:
        signals = [
            (self.rules.key_weight, 1.0),
            (self.rules.date_weight, self._date_score(pair.days_apart)),
        ]

        rate = self.rules.commission_rate_for(pair.channel_id)
        sale = pair.sale
        if rate is not None and sale.gross_amount > 0:
            implied = (
                sale.gross_amount - sale.tax_amount - sale.refund_amount - pair.payment.amount
            ) / sale.gross_amount
            if rate > 0:
                score = max(0.0, 1.0 - float(abs(implied - rate) / rate))
            else:
                score = 1.0 if implied == 0 else 0.0
            signals.append((self.rules.commission_weight, score))

        return self._confidence(signals)

    def _date_score(self, days_apart: int) -> float:
        lookback = self.rules.lookback_days
        if lookback == 0:
            return 1.0 if days_apart == 0 else 0.0
        return max(0.0, 1.0 - days_apart / lookback)

    def _age_signal(
        self,
        record_date: date,
        latest_other: Optional[date],
    ) -> Tuple[float, float]:
        """
        Older unmatched records are more likely real problems; records newer
        than anything on the other side may just be lagging.
        """
        if latest_other is None:
            return (self.rules.date_weight, 1.0)

        age = (latest_other - record_date).days
        if age <= 0:
            return (self.rules.date_weight, 0.0)
        lookback = self.rules.lookback_days
        if lookback == 0:
            return (self.rules.date_weight, 1.0)
        return (self.rules.date_weight, min(1.0, age / lookback))

    @staticmethod
    def _confidence(signals: Iterable[Tuple[float, float]]) -> float:
        """Weighted mean of signal scores, as a 0-100 percentage."""
        signals = list(signals)
        total_weight = sum(weight for weight, _ in signals)
        if total_weight <= 0:
            return 0.0
        score = sum(weight * value for weight, value in signals) / total_weight
        return round(100.0 * score, 1)

    @staticmethod
    def _describe(item: Evaluable) -> str:
        if isinstance(item, MatchedPair):
            return f"{item.sale.channel_id}/{item.sale.order_id}"
        if isinstance(item, SaleRecord):
            return f"{item.channel_id}/{item.order_id}"
        if isinstance(item, PaymentRecord):
            return f"{item.channel_id}/{item.reference_id or 'payment row ' + str(item.source_row)}"
        return repr(item)


def evaluate(
    item: Evaluable,
    rules: ToleranceConfig,
    latest_sale_date: Optional[date] = None,
    latest_payment_date: Optional[date] = None,
) -> Optional[Discrepancy]:
    """Evaluate a single matched pair or unmatched record."""
    evaluator = DiscrepancyEvaluator(rules, latest_sale_date, latest_payment_date)
    return evaluator.evaluate(item)
