"""
Reconciliation module for the archive engine.

Invariants:
    - Reconciliation is idempotent and writes only on change
"""

from .reconciler import ReconcileOutcome, Reconciler, ReconcileStats

__all__ = ["Reconciler", "ReconcileStats", "ReconcileOutcome"]
