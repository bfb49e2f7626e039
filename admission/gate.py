"""Admission gate: check then charge, once per billable stage."""

from __future__ import annotations

import logging
from typing import Optional

from utils.exceptions import InsufficientCredits

from .ledger import CreditLedger


logger = logging.getLogger(__name__)


class AdmissionGate:
    """Wraps a ledger with the has-credits / consume sequence."""

    def __init__(self, ledger: CreditLedger) -> None:
        self._ledger = ledger

    @property
    def ledger(self) -> CreditLedger:
        return self._ledger

    def check(self, owner_id: str, amount: int) -> None:
        """Raise InsufficientCredits when the owner cannot cover amount."""
        if amount <= 0:
            return
        if not self._ledger.has_credits(owner_id, amount):
            available = self._ledger.balance(owner_id)
            logger.warning("admission rejected owner=%s required=%s available=%s", owner_id, amount, available)
            raise InsufficientCredits(required=amount, available=available, owner_id=owner_id)

    def charge(
        self,
        owner_id: str,
        amount: int,
        reason: str,
        resource_id: Optional[str] = None,
    ) -> Optional[str]:
        """Check and consume. Returns the transaction id, or None for a free stage."""
        if amount <= 0:
            return None
        self.check(owner_id, amount)
        return self._ledger.consume(owner_id, amount, reason, resource_id=resource_id)
