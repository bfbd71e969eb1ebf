"""Reconciliation engine components."""

from .matcher import RecordMatcher, match
from .evaluator import DiscrepancyEvaluator, EvaluationResult, evaluate
from .aggregator import ReportAggregator, aggregate, rank_discrepancies
from .orchestrator import ReconciliationOrchestrator, reconcile

__all__ = [
    "RecordMatcher",
    "DiscrepancyEvaluator",
    "EvaluationResult",
    "ReportAggregator",
    "ReconciliationOrchestrator",
    "match",
    "evaluate",
    "aggregate",
    "rank_discrepancies",
    "reconcile",
]
