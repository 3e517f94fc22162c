"""Reconciliation engine components."""

from .status_reconciler import DocumentStatusReconciler
from .aggregator import ReportAggregator, certification_sort_key
from .orchestrator import VerificationOrchestrator

__all__ = [
    "DocumentStatusReconciler",
    "ReportAggregator",
    "certification_sort_key",
    "VerificationOrchestrator",
]
