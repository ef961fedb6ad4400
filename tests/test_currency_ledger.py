from __future__ import annotations

from datetime import datetime, timezone

import pytest

from keydojo.currency_ledger import CurrencyLedger
from keydojo.errors import InsufficientFunds, InvalidInput, LedgerIntegrityError
from keydojo.progression import CurrencyState

NOW = datetime(2026, 1, 5, 12, 0, tzinfo=timezone.utc)


def test_debit_beyond_balance_fails_without_side_effects() -> None:
    state = CurrencyState()
    ledger = CurrencyLedger(state)
    with pytest.raises(InsufficientFunds) as excinfo:
        ledger.debit(10, "shop", at=NOW)
    assert excinfo.value.requested == 10
    assert excinfo.value.balance == 0
    assert state.balance == 0
    assert state.transactions == []


def test_balance_matches_earned_minus_spent() -> None:
    state = CurrencyState()
    ledger = CurrencyLedger(state)
    ledger.credit(50, "reward", at=NOW)
    ledger.debit(20, "shop", at=NOW)
    ledger.credit(5, "reward", at=NOW)
    ledger.debit(35, "shop", at=NOW)

    assert state.balance == 0
    assert state.total_earned == 55
    assert ledger.total_spent() == 55
    assert [tx.kind for tx in state.transactions] == ["earn", "spend", "earn", "spend"]
    assert all(tx.amount > 0 for tx in state.transactions)


def test_debit_of_exact_balance_is_allowed() -> None:
    state = CurrencyState()
    ledger = CurrencyLedger(state)
    ledger.credit(30, "reward", at=NOW)
    assert ledger.debit(30, "shop", at=NOW) == 0


def test_non_positive_amounts_are_rejected() -> None:
    ledger = CurrencyLedger(CurrencyState())
    with pytest.raises(InvalidInput):
        ledger.credit(0, "reward", at=NOW)
    with pytest.raises(InvalidInput):
        ledger.debit(-1, "shop", at=NOW)


def test_verify_detects_tampered_balance() -> None:
    state = CurrencyState()
    ledger = CurrencyLedger(state)
    ledger.credit(10, "reward", at=NOW)
    state.balance = 99
    with pytest.raises(LedgerIntegrityError):
        ledger.verify()
