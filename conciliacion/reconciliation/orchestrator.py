"""
Reconciliation Orchestrator - Main pipeline coordinator.

Orchestrates the full reconciliation run:
1. Normalization of raw sale and payment rows
2. Matching by (channel, order/reference id)
3. Discrepancy evaluation, in chunks that can be cancelled
4. Aggregation into the final report

A run either returns a complete report or raises a single structured error;
partial reports are never produced.
"""

import asyncio
import threading
from dataclasses import replace
from datetime import date
from typing import Any, Callable, List, Optional, Sequence

import structlog

from ..config import ToleranceConfig
from ..exceptions import ReconciliationCancelled
from ..ingestion import RecordNormalizer
from ..ingestion.normalizer import RawRow
from ..models import (
    AuditAction,
    Discrepancy,
    MatchResult,
    ReconciliationReport,
)
from ..utils.audit_logger import AuditLogger
from .aggregator import ReportAggregator
from .evaluator import DiscrepancyEvaluator
from .matcher import RecordMatcher

logger = structlog.get_logger()

ProgressCallback = Callable[[float, str], None]


class ReconciliationOrchestrator:
    """
    Main orchestrator for the reconciliation pipeline.

    Holds only read-only configuration, so one instance can serve
    concurrent runs.
    """

    def __init__(self, config: Optional[ToleranceConfig] = None):
        self.config = config or ToleranceConfig.from_settings()
        self.matcher = RecordMatcher()
        self.aggregator = ReportAggregator(self.config)

    def run(
        self,
        raw_sales: Sequence[RawRow],
        raw_payments: Sequence[RawRow],
        default_channel: Optional[str] = None,
        tenant_id: Optional[str] = None,
        progress_callback: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> ReconciliationReport:
        """
        Execute a full reconciliation run.

        Args:
            raw_sales: Raw marketplace sale rows
            raw_payments: Raw payment-processor rows
            default_channel: Channel for rows that carry none
            tenant_id: Optional tenant/company id, used for logging only
            progress_callback: Optional callback for progress updates
            cancel_event: Checked between chunks; when set, the run aborts

        Returns:
            ReconciliationReport

        Raises:
            InvalidInputError: Input empty or structurally unrecognizable
            ReconciliationCancelled: cancel_event was set before completion
        """
        audit = AuditLogger(tenant_id)

        def update_progress(percent: float, phase: str):
            if progress_callback:
                progress_callback(percent, phase)

        def check_cancelled(phase: str):
            if cancel_event is not None and cancel_event.is_set():
                logger.warning("Reconciliation cancelled", phase=phase, tenant_id=tenant_id)
                raise ReconciliationCancelled(f"Reconciliation cancelled during {phase}")

        # Phase: Normalization
        check_cancelled("normalization")
        update_progress(5, "Normalizing input")

        normalizer = RecordNormalizer(default_channel=default_channel)
        normalized = normalizer.normalize(raw_sales, raw_payments)
        sales, payments = normalized.sales, normalized.payments

        audit.record(
            AuditAction.INPUT_NORMALIZED,
            f"Normalized {len(sales)} sales and {len(payments)} payments",
            sales=len(sales),
            payments=len(payments),
        )
        if normalized.errors:
            audit.record(
                AuditAction.ROWS_REJECTED,
                f"Rejected {normalized.errors} malformed rows",
                success=False,
                rejected=normalized.errors,
            )

        # Phase: Matching
        check_cancelled("matching")
        update_progress(20, "Matching sales and payments")

        match_result = self.matcher.match(sales, payments)
        audit.record(
            AuditAction.RECORDS_MATCHED,
            f"Matched {len(match_result.matched)} pairs",
            matched=len(match_result.matched),
            unmatched_sales=len(match_result.unmatched_sales),
            unmatched_payments=len(match_result.unmatched_payments),
        )

        # Phase: Evaluation
        evaluator = DiscrepancyEvaluator(
            self.config,
            latest_sale_date=self._latest(s.date for s in sales),
            latest_payment_date=self._latest(p.date for p in payments),
        )
        discrepancies, skipped, skipped_details = self._evaluate_in_chunks(
            evaluator,
            match_result,
            audit,
            update_progress,
            check_cancelled,
        )

        # Phase: Aggregation
        check_cancelled("aggregation")
        update_progress(90, "Aggregating report")

        report = self.aggregator.aggregate(
            discrepancies,
            sales,
            payments,
            matched_count=len(match_result.matched),
            errors=normalized.errors + skipped,
            error_details=normalized.error_details + skipped_details,
        )

        if report.alerts:
            audit.record(
                AuditAction.ALERTS_RAISED,
                f"Raised {len(report.alerts)} alerts",
                critical=len(report.critical_alerts),
                total_alerts=len(report.alerts),
            )
        audit.record(
            AuditAction.REPORT_COMPLETED,
            "Reconciliation complete",
            accuracy_rate=str(report.accuracy_rate),
            discrepancies=report.discrepancy_count,
            errors=report.errors,
        )

        update_progress(100, "Complete")

        return replace(report, audit_log=tuple(audit.entries))

    async def run_async(
        self,
        raw_sales: Sequence[RawRow],
        raw_payments: Sequence[RawRow],
        **kwargs: Any,
    ) -> ReconciliationReport:
        """
        Run on a worker thread. Cancelling the awaiting task stops the worker
        at its next chunk boundary.
        """
        cancel_event = kwargs.pop("cancel_event", None) or threading.Event()
        try:
            return await asyncio.to_thread(
                self.run,
                raw_sales,
                raw_payments,
                cancel_event=cancel_event,
                **kwargs,
            )
        except asyncio.CancelledError:
            cancel_event.set()
            raise

    def _evaluate_in_chunks(
        self,
        evaluator: DiscrepancyEvaluator,
        match_result: MatchResult,
        audit: AuditLogger,
        update_progress: ProgressCallback,
        check_cancelled: Callable[[str], None],
    ):
        """Evaluate matcher output in chunks of config.chunk_size items."""
        items: List[Any] = []
        items.extend(("matched", pair) for pair in match_result.matched)
        items.extend(("sale", sale) for sale in match_result.unmatched_sales)
        items.extend(("payment", payment) for payment in match_result.unmatched_payments)

        chunk_size = self.config.chunk_size
        total_chunks = max(1, -(-len(items) // chunk_size))

        discrepancies: List[Discrepancy] = []
        skipped = 0
        skipped_details: List[str] = []

        for index in range(total_chunks):
            check_cancelled("evaluation")
            chunk = items[index * chunk_size:(index + 1) * chunk_size]

            result = evaluator.evaluate_batch(
                matched=[item for kind, item in chunk if kind == "matched"],
                unmatched_sales=[item for kind, item in chunk if kind == "sale"],
                unmatched_payments=[item for kind, item in chunk if kind == "payment"],
            )
            discrepancies.extend(result.discrepancies)
            skipped += result.skipped
            skipped_details.extend(result.skipped_details)

            for detail in result.skipped_details:
                audit.record(
                    AuditAction.EVALUATION_SKIPPED,
                    "Item skipped during evaluation",
                    success=False,
                    item=detail,
                )
            audit.record(
                AuditAction.CHUNK_EVALUATED,
                f"Evaluated chunk {index + 1}/{total_chunks}",
                chunk=index + 1,
                items=len(chunk),
                flagged=len(result.discrepancies),
            )

            update_progress(
                20 + 70 * (index + 1) / total_chunks,
                f"Evaluated chunk {index + 1}/{total_chunks}",
            )

        return discrepancies, skipped, skipped_details

    @staticmethod
    def _latest(dates) -> Optional[date]:
        return max(dates, default=None)


def reconcile(
    raw_sales: Sequence[RawRow],
    raw_payments: Sequence[RawRow],
    config: Optional[ToleranceConfig] = None,
    **kwargs: Any,
) -> ReconciliationReport:
    """Run a reconciliation with a fresh orchestrator."""
    return ReconciliationOrchestrator(config).run(raw_sales, raw_payments, **kwargs)
