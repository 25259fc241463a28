"""Chart-of-accounts validation for proposed journal entries.

Validation is a separate, pure stage that runs before anything touches
the ledger. A batch is all-or-nothing: the first violation blocks every
entry in it.
"""

from collections.abc import Sequence
from dataclasses import dataclass

from business_spark.errors import LedgerValidationError
from business_spark.ledger.accounts import is_valid_account
from business_spark.ledger.entries import ZERO, JournalEntry


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating a batch of journal entries."""

    valid: bool
    error: str | None = None
    entry_index: int | None = None
    account: str | None = None

    @classmethod
    def ok(cls) -> "ValidationResult":
        return cls(valid=True)

    def __bool__(self) -> bool:
        return self.valid


def validate_entries(entries: Sequence[JournalEntry]) -> ValidationResult:
    """Check entries against the chart of accounts, in order.

    Rules, per entry:
    1. The debit account must be in the chart of accounts.
    2. The credit account must be in the chart of accounts.
    3. The amount must be strictly positive.

    Args:
        entries: Proposed journal entries, in the order they would post.

    Returns:
        ValidationResult describing the first violation, or a valid result.
    """
    for index, entry in enumerate(entries):
        if not is_valid_account(entry.debit_account):
            return ValidationResult(
                valid=False,
                error=f"Invalid Debit Account: {entry.debit_account}",
                entry_index=index,
                account=entry.debit_account,
            )
        if not is_valid_account(entry.credit_account):
            return ValidationResult(
                valid=False,
                error=f"Invalid Credit Account: {entry.credit_account}",
                entry_index=index,
                account=entry.credit_account,
            )
        if entry.amount <= ZERO:
            return ValidationResult(
                valid=False,
                error=(
                    f"Invalid Amount: {entry.amount} for '{entry.description}'"
                    " (amounts must be greater than zero)"
                ),
                entry_index=index,
            )

    return ValidationResult.ok()


def require_valid(entries: Sequence[JournalEntry]) -> None:
    """Validate entries and raise on the first violation.

    Raises:
        LedgerValidationError: If any entry is invalid.
    """
    result = validate_entries(entries)
    if not result.valid:
        raise LedgerValidationError(
            result.error or "Invalid journal entries",
            account=result.account,
            entry_index=result.entry_index,
        )
