"""Append-only ledger and the balance projections built on it.

The ledger is the only stored financial fact. Cash, account balances and
every statement figure are recomputed from it by a full scan, so there is
no running total that can drift out of sync with the journal.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable, Sequence
from decimal import Decimal
from typing import TYPE_CHECKING

import structlog

from business_spark.ledger.accounts import Account, NormalBalance, normal_balance
from business_spark.ledger.entries import ZERO, JournalEntry

if TYPE_CHECKING:
    from business_spark.state import BusinessState

logger = structlog.get_logger(__name__)

Ledger = tuple[JournalEntry, ...]

_CHART = frozenset(account.value for account in Account)


def _name(account: Account | str) -> str:
    return account.value if isinstance(account, Account) else account


def get_account_balance(ledger: Iterable[JournalEntry], account: Account | str) -> Decimal:
    """Fold the ledger into a debit-minus-credit balance for one account."""
    name = _name(account)
    balance = ZERO
    for entry in ledger:
        if entry.debit_account == name:
            balance += entry.amount
        if entry.credit_account == name:
            balance -= entry.amount
    return balance


def natural_balance(ledger: Iterable[JournalEntry], account: Account) -> Decimal:
    """Balance presented on the account's normal side.

    Credit-normal accounts (liabilities, equity, revenue) are sign-flipped
    so a healthy balance reads as positive.
    """
    balance = get_account_balance(ledger, account)
    if normal_balance(account) == NormalBalance.CREDIT:
        return -balance
    return balance


def account_balances(ledger: Iterable[JournalEntry]) -> dict[Account, Decimal]:
    """Debit-minus-credit balances for every account in one pass."""
    balances = {account: ZERO for account in Account}
    for entry in ledger:
        debit = Account(entry.debit_account)
        credit = Account(entry.credit_account)
        balances[debit] += entry.amount
        balances[credit] -= entry.amount
    return balances


def compute_cash(ledger: Iterable[JournalEntry]) -> Decimal:
    """Cash balance derived from every Cash posting in the ledger."""
    return get_account_balance(ledger, Account.CASH)


def total_debits(ledger: Iterable[JournalEntry]) -> Decimal:
    """Total of the debit column across the chart of accounts.

    A posting to a name outside the chart lands in no column, so a
    ledger that never went through validation does not balance.
    """
    return sum((entry.amount for entry in ledger if entry.debit_account in _CHART), ZERO)


def total_credits(ledger: Iterable[JournalEntry]) -> Decimal:
    """Total of the credit column across the chart of accounts."""
    return sum((entry.amount for entry in ledger if entry.credit_account in _CHART), ZERO)


def is_balanced(ledger: Sequence[JournalEntry]) -> bool:
    """Check the accounting identity: total debits equal total credits.

    A ledger with any posting outside the chart is never balanced.
    """
    if any(
        entry.debit_account not in _CHART or entry.credit_account not in _CHART
        for entry in ledger
    ):
        return False
    if total_debits(ledger) != total_credits(ledger):
        return False
    return sum(account_balances(ledger).values(), ZERO) == ZERO


def apply_entries(state: BusinessState, entries: Sequence[JournalEntry]) -> BusinessState:
    """Append validated entries and return the resulting state.

    Entries must already have passed validation; nothing is checked here.
    Cash is recomputed from the full ledger and the bankruptcy flag is set
    once cash goes negative after the first week. The flag is sticky.

    Args:
        state: Current business state (not modified).
        entries: Validated entries, applied in the given order.

    Returns:
        A new BusinessState with the extended ledger.
    """
    ledger: Ledger = tuple(state.ledger) + tuple(entries)
    cash = compute_cash(ledger)
    bankrupt = cash < ZERO and state.week > 1

    if bankrupt and not state.game_over:
        logger.warning("cash_negative_game_over", cash=str(cash), week=state.week)

    return dataclasses.replace(
        state,
        ledger=ledger,
        cash=cash,
        game_over=state.game_over or bankrupt,
    )
