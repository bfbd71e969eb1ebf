"""
Normalizer for raw sale and payment rows.

Converts rows coming from different channels (mixed numeric types, currency
formats and date formats) into canonical SaleRecord / PaymentRecord objects.
Malformed rows are dropped and counted; only empty or structurally
unrecognizable input is fatal.
"""

import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_EVEN, Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import structlog

from ..exceptions import InvalidInputError
from ..models import PaymentRecord, SaleRecord

logger = structlog.get_logger()

CENTS = Decimal("0.01")

RawRow = Mapping[str, Any]


# Canonical field -> accepted header names (normalized form)
SALE_COLUMNS: Dict[str, Tuple[str, ...]] = {
    "order_id": ("order_id", "orderid", "order", "orden", "id_orden", "numero_orden"),
    "channel_id": ("channel_id", "channel", "canal", "canal_id"),
    "date": ("date", "fecha", "sale_date", "fecha_venta"),
    "gross_amount": ("gross_amount", "gross", "monto_bruto"),
    "net_amount": ("net_amount", "net", "monto_neto"),
    "tax_amount": ("tax_amount", "tax", "iva", "impuesto"),
    "commission_amount": ("commission_amount", "commission", "comisiones", "comision"),
    "refund_amount": ("refund_amount", "refund", "refunds", "devoluciones"),
}

PAYMENT_COLUMNS: Dict[str, Tuple[str, ...]] = {
    "reference_id": ("reference_id", "reference", "referencia", "order_id"),
    "channel_id": ("channel_id", "channel", "canal", "canal_id"),
    "date": ("date", "fecha", "payment_date", "fecha_pago"),
    "amount": ("amount", "monto", "monto_pagado"),
    "fee_amount": ("fee_amount", "fee", "fees", "comision", "comisiones"),
}

SALE_REQUIRED = ("order_id", "date", "net_amount")
PAYMENT_REQUIRED = ("date", "amount")


@dataclass
class NormalizationResult:
    """Result of normalizing a batch."""
    sales: List[SaleRecord] = field(default_factory=list)
    payments: List[PaymentRecord] = field(default_factory=list)
    errors: int = 0
    error_details: List[str] = field(default_factory=list)


class RowError(ValueError):
    """A single row could not be normalized."""


class RecordNormalizer:
    """
    Converts raw rows into canonical records.

    Amounts are rounded to cents with banker's rounding exactly once, here.
    Dates become calendar dates in UTC.
    """

    CURRENCY_PATTERN = re.compile(r"[$€£\s ]|clp|usd|eur|mxn|ars|cop|pen|brl", re.I)
    PLAIN_NUMBER = re.compile(r"^-?\d+(\.\d+)?$")
    DATE_PATTERNS = [
        re.compile(r"^(\d{1,2})[/-](\d{1,2})[/-](\d{2,4})$"),  # DD/MM/YYYY or DD-MM-YY
        re.compile(r"^(\d{1,2})\s+(ene|feb|mar|abr|may|jun|jul|ago|sep|oct|nov|dic)[a-z]*\.?\s+(\d{2,4})$", re.I),
    ]
    MONTH_MAP = {
        "ene": 1, "feb": 2, "mar": 3, "abr": 4, "may": 5, "jun": 6,
        "jul": 7, "ago": 8, "sep": 9, "oct": 10, "nov": 11, "dic": 12,
    }

    def __init__(self, default_channel: Optional[str] = None):
        self.default_channel = default_channel

    def normalize(
        self,
        raw_sales: Sequence[RawRow],
        raw_payments: Sequence[RawRow],
    ) -> NormalizationResult:
        """
        Normalize a batch of raw sales and payments.

        Args:
            raw_sales: Rows from the marketplace (sales)
            raw_payments: Rows from the payment processor

        Returns:
            NormalizationResult with records and the rejected-row tally

        Raises:
            InvalidInputError: both inputs empty, or a side lacks a required column
        """
        raw_sales = list(raw_sales or [])
        raw_payments = list(raw_payments or [])

        if not raw_sales and not raw_payments:
            raise InvalidInputError("No sales or payments provided")

        self._check_structure(raw_sales, SALE_COLUMNS, SALE_REQUIRED, "sales")
        self._check_structure(raw_payments, PAYMENT_COLUMNS, PAYMENT_REQUIRED, "payments")

        result = NormalizationResult()

        for index, row in enumerate(raw_sales):
            try:
                result.sales.append(self._parse_sale(row, index))
            except RowError as e:
                result.errors += 1
                result.error_details.append(f"sales row {index}: {e}")

        for index, row in enumerate(raw_payments):
            try:
                result.payments.append(self._parse_payment(row, index))
            except RowError as e:
                result.errors += 1
                result.error_details.append(f"payments row {index}: {e}")

        logger.info(
            "Normalization complete",
            sales=len(result.sales),
            payments=len(result.payments),
            errors=result.errors,
        )

        return result

    def _check_structure(
        self,
        rows: List[Any],
        columns: Dict[str, Tuple[str, ...]],
        required: Tuple[str, ...],
        side: str,
    ) -> None:
        """Fail if no row on this side carries one of the required columns."""
        if not rows:
            return

        seen = set()
        for row in rows:
            if isinstance(row, Mapping):
                seen.update(self._normalize_header(k) for k in row.keys())

        needed = list(required)
        if self.default_channel is None:
            needed.append("channel_id")

        missing = [
            name for name in needed
            if not any(alias in seen for alias in columns[name])
        ]
        if missing:
            logger.error("Unrecognizable input", side=side, missing=missing)
            raise InvalidInputError(
                f"{side} input is missing required columns: {', '.join(missing)}",
                side=side,
                missing_columns=missing,
            )

    def _parse_sale(self, row: Any, index: int) -> SaleRecord:
        fields = self._resolve(row, SALE_COLUMNS)

        order_id = self._require_text(fields, "order_id")
        channel_id = self._channel(fields)
        sale_date = self._parse_date_field(fields, "date")
        net = self._parse_amount_field(fields, "net_amount", required=True)
        tax = self._parse_amount_field(fields, "tax_amount")
        commission = self._parse_amount_field(fields, "commission_amount")
        refund = self._parse_amount_field(fields, "refund_amount")

        # Without a gross column the breakdown is taken at face value
        if self._is_blank(fields.get("gross_amount")):
            gross = net + commission + tax + refund
        else:
            gross = self._parse_amount_field(fields, "gross_amount")

        return SaleRecord(
            order_id=order_id,
            channel_id=channel_id,
            date=sale_date,
            gross_amount=gross,
            net_amount=net,
            tax_amount=tax,
            commission_amount=commission,
            refund_amount=refund,
            source_row=index,
        )

    def _parse_payment(self, row: Any, index: int) -> PaymentRecord:
        fields = self._resolve(row, PAYMENT_COLUMNS)

        reference = fields.get("reference_id")
        reference_id = "" if self._is_blank(reference) else str(reference).strip()

        return PaymentRecord(
            reference_id=reference_id,
            channel_id=self._channel(fields),
            date=self._parse_date_field(fields, "date"),
            amount=self._parse_amount_field(fields, "amount", required=True),
            fee_amount=self._parse_amount_field(fields, "fee_amount"),
            source_row=index,
        )

    def _resolve(
        self,
        row: Any,
        columns: Dict[str, Tuple[str, ...]],
    ) -> Dict[str, Any]:
        """Map a raw row onto canonical field names."""
        if not isinstance(row, Mapping):
            raise RowError("row is not a mapping")

        normalized = {self._normalize_header(k): v for k, v in row.items()}
        fields = {}
        for name, aliases in columns.items():
            for alias in aliases:
                if alias in normalized:
                    fields[name] = normalized[alias]
                    break
        return fields

    @staticmethod
    def _normalize_header(key: Any) -> str:
        return re.sub(r"[\s\-]+", "_", str(key).strip().lower())

    @staticmethod
    def _is_blank(value: Any) -> bool:
        return value is None or (isinstance(value, str) and not value.strip())

    def _require_text(self, fields: Dict[str, Any], name: str) -> str:
        value = fields.get(name)
        if self._is_blank(value):
            raise RowError(f"missing {name}")
        return str(value).strip()

    def _channel(self, fields: Dict[str, Any]) -> str:
        value = fields.get("channel_id")
        if self._is_blank(value):
            if self.default_channel is None:
                raise RowError("missing channel_id")
            return self.default_channel
        return str(value).strip()

    def _parse_date_field(self, fields: Dict[str, Any], name: str) -> date:
        value = fields.get(name)
        if self._is_blank(value):
            raise RowError(f"missing {name}")
        try:
            return self.parse_date(value)
        except ValueError:
            raise RowError(f"unparsable {name}: {value!r}")

    def _parse_amount_field(
        self,
        fields: Dict[str, Any],
        name: str,
        required: bool = False,
    ) -> Decimal:
        value = fields.get(name)
        if self._is_blank(value):
            if required:
                raise RowError(f"missing {name}")
            return Decimal("0.00")
        try:
            return self.parse_amount(value)
        except ValueError:
            raise RowError(f"non-numeric {name}: {value!r}")

    def parse_amount(self, value: Any) -> Decimal:
        """
        Parse a monetary value into a Decimal rounded to cents.

        Accepts Decimal, int, float and strings such as "$1.234,56",
        "1,234.56", "CLP 50.000" or "(1.500)". A single separator followed
        by exactly three digits is read as a thousands separator.
        """
        if isinstance(value, bool):
            raise ValueError("boolean is not an amount")

        if isinstance(value, Decimal):
            amount = value
        elif isinstance(value, int):
            amount = Decimal(value)
        elif isinstance(value, float):
            if not math.isfinite(value):
                raise ValueError("non-finite amount")
            amount = Decimal(repr(value))
        elif isinstance(value, str):
            amount = self._parse_amount_text(value)
        else:
            raise ValueError(f"unsupported amount type: {type(value).__name__}")

        if not amount.is_finite():
            raise ValueError("non-finite amount")

        try:
            return amount.quantize(CENTS, rounding=ROUND_HALF_EVEN)
        except InvalidOperation:
            raise ValueError("amount exceeds supported precision")

    def _parse_amount_text(self, text: str) -> Decimal:
        text = text.strip()
        negative = text.startswith("(") and text.endswith(")")
        cleaned = self.CURRENCY_PATTERN.sub("", text[1:-1] if negative else text)

        if "-" in cleaned:
            # "(-5)" is ambiguous
            if negative or cleaned.count("-") > 1 or not cleaned.startswith("-"):
                raise ValueError(f"malformed amount: {text!r}")
            negative = True
            cleaned = cleaned[1:]

        cleaned = self._resolve_separators(cleaned)

        if not self.PLAIN_NUMBER.match(cleaned):
            raise ValueError(f"malformed amount: {text!r}")

        try:
            amount = Decimal(cleaned)
        except InvalidOperation:
            raise ValueError(f"malformed amount: {text!r}")

        return -amount if negative else amount

    @staticmethod
    def _resolve_separators(text: str) -> str:
        """Rewrite a number so '.' is the only (decimal) separator."""
        has_dot = "." in text
        has_comma = "," in text

        if has_dot and has_comma:
            # The right-most separator is the decimal one
            if text.rfind(",") > text.rfind("."):
                return text.replace(".", "").replace(",", ".")
            return text.replace(",", "")

        separator = "," if has_comma else "." if has_dot else None
        if separator is None:
            return text

        parts = text.split(separator)
        if len(parts) > 2 or len(parts[-1]) == 3:
            return "".join(parts)
        return ".".join(parts)

    def parse_date(self, value: Any) -> date:
        """Parse a date-like value into a UTC calendar date."""
        if isinstance(value, datetime):
            if value.tzinfo is not None:
                value = value.astimezone(timezone.utc)
            return value.date()

        if isinstance(value, date):
            return value

        if not isinstance(value, str):
            raise ValueError(f"unsupported date type: {type(value).__name__}")

        text = value.strip()

        iso = text[:-1] + "+00:00" if text.endswith(("Z", "z")) else text
        try:
            parsed = datetime.fromisoformat(iso)
        except ValueError:
            parsed = None
        if parsed is not None:
            return self.parse_date(parsed)

        match = self.DATE_PATTERNS[0].match(text)
        if match:
            day, month, year = (int(g) for g in match.groups())
            return date(self._full_year(year), month, day)

        match = self.DATE_PATTERNS[1].match(text)
        if match:
            day = int(match.group(1))
            month = self.MONTH_MAP[match.group(2).lower()]
            year = int(match.group(3))
            return date(self._full_year(year), month, day)

        raise ValueError(f"unrecognized date: {value!r}")

    @staticmethod
    def _full_year(year: int) -> int:
        return year + 2000 if year < 100 else year


def normalize(
    raw_sales: Sequence[RawRow],
    raw_payments: Sequence[RawRow],
    default_channel: Optional[str] = None,
) -> NormalizationResult:
    """Normalize raw rows into canonical records."""
    return RecordNormalizer(default_channel=default_channel).normalize(raw_sales, raw_payments)
