"""Credit ledger: balance checks, consumption and transaction history."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from threading import Lock
from typing import Dict, List, Optional
from uuid import uuid4

from core import CreditTransaction
from utils.exceptions import InsufficientCredits


logger = logging.getLogger(__name__)


def _new_transaction_id() -> str:
    return f"txn_{uuid4().hex[:12]}"


class CreditLedger(ABC):
    """Owner-scoped credit balances."""

    @abstractmethod
    def has_credits(self, owner_id: str, amount: int) -> bool:
        ...

    @abstractmethod
    def consume(
        self,
        owner_id: str,
        amount: int,
        reason: str,
        resource_id: Optional[str] = None,
    ) -> str:
        """Debit credits and return the transaction id."""

    @abstractmethod
    def balance(self, owner_id: str) -> int:
        ...

    @abstractmethod
    def grant(self, owner_id: str, amount: int, reason: str = "grant") -> str:
        ...

    @abstractmethod
    def history(self, owner_id: str) -> List[CreditTransaction]:
        ...


class InMemoryCreditLedger(CreditLedger):
    """Thread-safe ledger kept in process memory."""

    def __init__(self, *, initial_balance: int = 0) -> None:
        self._initial_balance = max(0, int(initial_balance))
        self._balances: Dict[str, int] = {}
        self._transactions: Dict[str, List[CreditTransaction]] = {}
        self._lock = Lock()

    def _balance_locked(self, owner_id: str) -> int:
        return self._balances.setdefault(owner_id, self._initial_balance)

    def _record_locked(
        self,
        owner_id: str,
        amount: int,
        reason: str,
        resource_id: Optional[str],
    ) -> CreditTransaction:
        before = self._balance_locked(owner_id)
        after = before + amount
        txn = CreditTransaction(
            id=_new_transaction_id(),
            owner_id=owner_id,
            amount=amount,
            balance_before=before,
            balance_after=after,
            reason=reason,
            resource_id=resource_id,
        )
        self._balances[owner_id] = after
        self._transactions.setdefault(owner_id, []).append(txn)
        return txn

    def has_credits(self, owner_id: str, amount: int) -> bool:
        with self._lock:
            return self._balance_locked(owner_id) >= amount

    def consume(
        self,
        owner_id: str,
        amount: int,
        reason: str,
        resource_id: Optional[str] = None,
    ) -> str:
        amount = int(amount)
        if amount <= 0:
            raise ValueError("credit amount must be positive")
        with self._lock:
            available = self._balance_locked(owner_id)
            if available < amount:
                raise InsufficientCredits(required=amount, available=available, owner_id=owner_id)
            txn = self._record_locked(owner_id, -amount, reason, resource_id)
        logger.info(
            "credits consumed owner=%s amount=%s balance=%s reason=%s",
            owner_id,
            amount,
            txn.balance_after,
            reason,
        )
        return txn.id

    def balance(self, owner_id: str) -> int:
        with self._lock:
            return self._balance_locked(owner_id)

    def grant(self, owner_id: str, amount: int, reason: str = "grant") -> str:
        amount = int(amount)
        if amount <= 0:
            raise ValueError("credit amount must be positive")
        with self._lock:
            txn = self._record_locked(owner_id, amount, reason, None)
        return txn.id

    def history(self, owner_id: str) -> List[CreditTransaction]:
        with self._lock:
            return [txn.model_copy() for txn in self._transactions.get(owner_id, [])]
