"""Report lifecycle: storage, submission, and status reconciliation."""

from safevoice.lifecycle.reconciler import StatusReconciler
from safevoice.lifecycle.report_store import ReportStore, generate_tracking_code

__all__ = ["ReportStore", "StatusReconciler", "generate_tracking_code"]
