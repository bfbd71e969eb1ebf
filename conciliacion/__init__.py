"""Sales/payments reconciliation engine for multi-channel e-commerce."""

from .config import Settings, ToleranceConfig, get_settings
from .exceptions import (
    EvaluationSkipped,
    InvalidInputError,
    ReconciliationCancelled,
    ReconciliationError,
)
from .ingestion import normalize
from .reconciliation import (
    ReconciliationOrchestrator,
    aggregate,
    evaluate,
    match,
    reconcile,
)

__version__ = "0.1.0"

__all__ = [
    "Settings",
    "ToleranceConfig",
    "get_settings",
    "EvaluationSkipped",
    "InvalidInputError",
    "ReconciliationCancelled",
    "ReconciliationError",
    "ReconciliationOrchestrator",
    "normalize",
    "match",
    "evaluate",
    "aggregate",
    "reconcile",
]
