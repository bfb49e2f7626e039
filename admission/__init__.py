"""Credit-based admission control."""

from .gate import AdmissionGate
from .ledger import CreditLedger, InMemoryCreditLedger
from .pricing import credits_for_annotation, credits_for_selection

__all__ = [
    "AdmissionGate",
    "CreditLedger",
    "InMemoryCreditLedger",
    "credits_for_annotation",
    "credits_for_selection",
]
