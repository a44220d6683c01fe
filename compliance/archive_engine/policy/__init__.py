"""
Policy module for the archive engine - usage gate and classification.

Invariants:
    - Policy decisions are pure functions of a policy snapshot and inputs
"""

from .classification import Classification, classify, is_legacy
from .gate import GateDecision, PolicyGate, UsageBlock

__all__ = [
    "PolicyGate",
    "GateDecision",
    "UsageBlock",
    "Classification",
    "classify",
    "is_legacy",
]
