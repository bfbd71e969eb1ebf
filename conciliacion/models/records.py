"""Canonical sale/payment records and matcher output."""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List


@dataclass(frozen=True)
class SaleRecord:
    """
    A marketplace sale after normalization.
    All monetary amounts are Decimals rounded to cents at ingestion.
    """
    order_id: str
    channel_id: str
    date: date
    net_amount: Decimal
    gross_amount: Decimal = Decimal("0.00")
    tax_amount: Decimal = Decimal("0.00")
    commission_amount: Decimal = Decimal("0.00")
    refund_amount: Decimal = Decimal("0.00")
    source_row: int = 0

    @property
    def key(self) -> str:
        return self.order_id

    @property
    def expected_net(self) -> Decimal:
        """Net amount implied by the gross breakdown."""
        return (
            self.gross_amount
            - self.commission_amount
            - self.tax_amount
            - self.refund_amount
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "order_id": self.order_id,
            "channel_id": self.channel_id,
            "date": self.date.isoformat(),
            "gross_amount": str(self.gross_amount),
            "net_amount": str(self.net_amount),
            "tax_amount": str(self.tax_amount),
            "commission_amount": str(self.commission_amount),
            "refund_amount": str(self.refund_amount),
        }


@dataclass(frozen=True)
class PaymentRecord:
    """Money actually settled by a payment processor."""
    reference_id: str
    channel_id: str
    date: date
    amount: Decimal
    fee_amount: Decimal = Decimal("0.00")
    source_row: int = 0

    @property
    def key(self) -> str:
        return self.reference_id

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "reference_id": self.reference_id,
            "channel_id": self.channel_id,
            "date": self.date.isoformat(),
            "amount": str(self.amount),
            "fee_amount": str(self.fee_amount),
        }


@dataclass(frozen=True)
class MatchedPair:
    """A sale linked to its payment. Lives for a single run."""
    sale: SaleRecord
    payment: PaymentRecord

    @property
    def channel_id(self) -> str:
        return self.sale.channel_id

    @property
    def days_apart(self) -> int:
        return abs((self.payment.date - self.sale.date).days)

    @property
    def delta(self) -> Decimal:
        """Absolute difference between expected net and settled amount."""
        return abs(self.sale.net_amount - self.payment.amount)


@dataclass
class MatchResult:
    """Output of the matcher: every input record lands in exactly one list."""
    matched: List[MatchedPair] = field(default_factory=list)
    unmatched_sales: List[SaleRecord] = field(default_factory=list)
    unmatched_payments: List[PaymentRecord] = field(default_factory=list)

    @property
    def total_sales(self) -> int:
        return len(self.matched) + len(self.unmatched_sales)

    @property
    def total_payments(self) -> int:
        return len(self.matched) + len(self.unmatched_payments)
