"""Append-only earn/spend log with a running balance."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from .errors import InsufficientFunds, LedgerIntegrityError, require_positive
from .progression import CurrencyState, CurrencyTransaction


class CurrencyLedger:
    def __init__(self, state: CurrencyState) -> None:
        self._state = state

    @property
    def state(self) -> CurrencyState:
        return self._state

    def credit(
        self,
        amount: int,
        source: str,
        description: Optional[str] = None,
        *,
        at: datetime,
    ) -> int:
        require_positive(amount, "amount")
        state = self._state
        state.transactions.append(
            CurrencyTransaction(timestamp=at, amount=amount, kind="earn", source=source, description=description)
        )
        state.balance += amount
        state.total_earned += amount
        self.verify()
        return state.balance

    def debit(
        self,
        amount: int,
        source: str,
        description: Optional[str] = None,
        *,
        at: datetime,
    ) -> int:
        require_positive(amount, "amount")
        state = self._state
        if amount > state.balance:
            raise InsufficientFunds(amount, state.balance)
        state.transactions.append(
            CurrencyTransaction(timestamp=at, amount=amount, kind="spend", source=source, description=description)
        )
        state.balance -= amount
        self.verify()
        return state.balance

    def total_spent(self) -> int:
        return sum(tx.amount for tx in self._state.transactions if tx.kind == "spend")

    def verify(self) -> None:
        """Raise if the balance no longer matches the transaction log."""
        state = self._state
        expected = state.total_earned - self.total_spent()
        if state.balance != expected:
            raise LedgerIntegrityError(
                f"Balance {state.balance} does not match earned minus spent ({expected})."
            )
        if state.balance < 0:
            raise LedgerIntegrityError(f"Balance went negative: {state.balance}")


__all__ = ["CurrencyLedger"]
