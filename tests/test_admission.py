from __future__ import annotations

import pytest

from admission import AdmissionGate, InMemoryCreditLedger, credits_for_annotation, credits_for_selection
from utils.exceptions import InsufficientCredits


def test_pricing_buckets() -> None:
    assert credits_for_selection(0) == 0
    assert credits_for_selection(1) == 1
    assert credits_for_selection(50) == 1
    assert credits_for_selection(51) == 2
    assert credits_for_annotation(4) == 1
    assert credits_for_annotation(5) == 2
    assert credits_for_annotation(10) == 3
    assert credits_for_annotation(10, items_per_credit=10) == 1


def test_ledger_consume_records_history() -> None:
    ledger = InMemoryCreditLedger(initial_balance=10)

    txn_id = ledger.consume("u1", 3, "analysis", resource_id="job_1")

    assert txn_id.startswith("txn_")
    assert ledger.balance("u1") == 7
    (txn,) = ledger.history("u1")
    assert txn.amount == -3
    assert (txn.balance_before, txn.balance_after) == (10, 7)
    assert txn.resource_id == "job_1"


def test_ledger_rejects_overdraft_without_side_effects() -> None:
    ledger = InMemoryCreditLedger()
    ledger.grant("u1", 2)

    with pytest.raises(InsufficientCredits) as exc_info:
        ledger.consume("u1", 5, "analysis")

    assert exc_info.value.required == 5
    assert exc_info.value.available == 2
    assert ledger.balance("u1") == 2
    assert len(ledger.history("u1")) == 1


def test_ledger_rejects_non_positive_amounts() -> None:
    ledger = InMemoryCreditLedger(initial_balance=5)

    with pytest.raises(ValueError):
        ledger.consume("u1", 0, "noop")
    with pytest.raises(ValueError):
        ledger.grant("u1", -1)


def test_balances_are_per_owner() -> None:
    ledger = InMemoryCreditLedger()
    ledger.grant("u1", 4)

    assert ledger.has_credits("u1", 4) is True
    assert ledger.has_credits("u2", 1) is False


def test_gate_check_reports_required_and_available() -> None:
    ledger = InMemoryCreditLedger()
    ledger.grant("u1", 1)
    gate = AdmissionGate(ledger)

    gate.check("u1", 1)
    with pytest.raises(InsufficientCredits) as exc_info:
        gate.check("u1", 3)

    assert "required 3, available 1" in str(exc_info.value)


def test_gate_charge_skips_free_stages() -> None:
    ledger = InMemoryCreditLedger()
    gate = AdmissionGate(ledger)

    assert gate.charge("u1", 0, "empty scrape") is None
    ledger.grant("u1", 2)
    assert gate.charge("u1", 2, "scrape") is not None
    assert ledger.balance("u1") == 0
