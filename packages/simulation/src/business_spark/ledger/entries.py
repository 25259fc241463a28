"""Journal entries and money handling."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value: Any) -> Decimal:
    """Convert a number or numeric string into a cent-quantized Decimal.

    Floats go through ``str`` first so 0.1 becomes Decimal("0.10") rather
    than its binary expansion.

    Raises:
        ValueError: If the value is not a finite number or has too many
            digits to hold in cents.
    """
    if isinstance(value, bool):
        raise ValueError(f"Not a monetary amount: {value!r}")
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, (int, float, str)):
        try:
            amount = Decimal(str(value).strip())
        except InvalidOperation as e:
            raise ValueError(f"Not a monetary amount: {value!r}") from e
    else:
        raise ValueError(f"Not a monetary amount: {value!r}")

    if not amount.is_finite():
        raise ValueError(f"Not a monetary amount: {value!r}")
    try:
        return amount.quantize(CENTS, rounding=ROUND_HALF_UP)
    except InvalidOperation as e:
        raise ValueError(f"Amount out of range: {value!r}") from e


def _account_name(value: Any) -> str:
    return str(getattr(value, "value", value))


@dataclass(frozen=True)
class JournalEntry:
    """One debit/credit posting pair.

    Account names stay as raw strings until the validator has checked
    them, so an unknown name can be reported exactly as the generator
    sent it.
    """

    debit_account: str
    credit_account: str
    amount: Decimal
    description: str = ""

    def __post_init__(self) -> None:
        # Account members collapse to their names so equality is by value
        object.__setattr__(self, "debit_account", _account_name(self.debit_account))
        object.__setattr__(self, "credit_account", _account_name(self.credit_account))
        object.__setattr__(self, "amount", to_money(self.amount))

    def to_dict(self) -> dict[str, Any]:
        """Serialize to plain data (amount as string)."""
        return {
            "debit_account": self.debit_account,
            "credit_account": self.credit_account,
            "amount": str(self.amount),
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> JournalEntry:
        """Rebuild an entry from persisted data."""
        return cls(
            debit_account=data["debit_account"],
            credit_account=data["credit_account"],
            amount=to_money(data["amount"]),
            description=data.get("description", ""),
        )
