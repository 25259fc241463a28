"""Double-entry ledger: chart of accounts, validation and balances."""

from business_spark.ledger.accounts import (
    ACCOUNT_TYPES,
    OPERATING_EXPENSE_ACCOUNTS,
    VALID_ACCOUNT_NAMES,
    Account,
    AccountType,
    NormalBalance,
    account_type,
    is_valid_account,
    normal_balance,
)
from business_spark.ledger.entries import JournalEntry, to_money
from business_spark.ledger.store import (
    Ledger,
    account_balances,
    apply_entries,
    compute_cash,
    get_account_balance,
    is_balanced,
    natural_balance,
    total_credits,
    total_debits,
)
from business_spark.ledger.validator import ValidationResult, require_valid, validate_entries

__all__ = [
    # Chart of accounts
    "Account",
    "AccountType",
    "NormalBalance",
    "ACCOUNT_TYPES",
    "OPERATING_EXPENSE_ACCOUNTS",
    "VALID_ACCOUNT_NAMES",
    "account_type",
    "normal_balance",
    "is_valid_account",
    # Entries
    "JournalEntry",
    "to_money",
    # Validation
    "ValidationResult",
    "validate_entries",
    "require_valid",
    # Ledger store
    "Ledger",
    "apply_entries",
    "get_account_balance",
    "natural_balance",
    "account_balances",
    "compute_cash",
    "total_debits",
    "total_credits",
    "is_balanced",
]
