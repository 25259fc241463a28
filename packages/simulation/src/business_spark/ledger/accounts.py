"""Chart of accounts for the 3D printing business.

The account list is closed: the generator may only post to these names,
and anything else is rejected before it reaches the ledger.
"""

from enum import Enum


class AccountType(str, Enum):
    """Classification of an account on the financial statements."""

    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    REVENUE = "revenue"
    EXPENSE = "expense"


class NormalBalance(str, Enum):
    """Side on which an account's balance is conventionally positive."""

    DEBIT = "debit"
    CREDIT = "credit"


class Account(str, Enum):
    """Every account a journal entry may reference."""

    # Assets
    CASH = "Cash"
    ACCOUNTS_RECEIVABLE = "Accounts Receivable"
    INVENTORY = "Inventory"
    EQUIPMENT = "Equipment"

    # Liabilities
    ACCOUNTS_PAYABLE = "Accounts Payable"
    LOANS_PAYABLE = "Loans Payable"

    # Equity
    OWNERS_EQUITY = "Owner's Equity"
    RETAINED_EARNINGS = "Retained Earnings"

    # Revenue
    SALES_REVENUE = "Sales Revenue"

    # Expenses
    COGS = "COGS"
    RENT = "Rent"
    MARKETING = "Marketing"
    MAINTENANCE = "Maintenance"
    SALARIES = "Salaries"
    DEPRECIATION = "Depreciation"


ACCOUNT_TYPES: dict[Account, AccountType] = {
    Account.CASH: AccountType.ASSET,
    Account.ACCOUNTS_RECEIVABLE: AccountType.ASSET,
    Account.INVENTORY: AccountType.ASSET,
    Account.EQUIPMENT: AccountType.ASSET,
    Account.ACCOUNTS_PAYABLE: AccountType.LIABILITY,
    Account.LOANS_PAYABLE: AccountType.LIABILITY,
    Account.OWNERS_EQUITY: AccountType.EQUITY,
    Account.RETAINED_EARNINGS: AccountType.EQUITY,
    Account.SALES_REVENUE: AccountType.REVENUE,
    Account.COGS: AccountType.EXPENSE,
    Account.RENT: AccountType.EXPENSE,
    Account.MARKETING: AccountType.EXPENSE,
    Account.MAINTENANCE: AccountType.EXPENSE,
    Account.SALARIES: AccountType.EXPENSE,
    Account.DEPRECIATION: AccountType.EXPENSE,
}

# Adding an Account member without classifying it is a programming error
_unclassified = set(Account) - set(ACCOUNT_TYPES)
if _unclassified:
    raise RuntimeError(f"Unclassified accounts: {sorted(a.value for a in _unclassified)}")

NORMAL_BALANCES: dict[AccountType, NormalBalance] = {
    AccountType.ASSET: NormalBalance.DEBIT,
    AccountType.EXPENSE: NormalBalance.DEBIT,
    AccountType.LIABILITY: NormalBalance.CREDIT,
    AccountType.EQUITY: NormalBalance.CREDIT,
    AccountType.REVENUE: NormalBalance.CREDIT,
}

OPERATING_EXPENSE_ACCOUNTS: tuple[Account, ...] = (
    Account.MARKETING,
    Account.RENT,
    Account.MAINTENANCE,
    Account.SALARIES,
    Account.DEPRECIATION,
)

VALID_ACCOUNT_NAMES: frozenset[str] = frozenset(account.value for account in Account)


def account_type(account: Account) -> AccountType:
    """Return the statement classification of an account."""
    return ACCOUNT_TYPES[account]


def normal_balance(account: Account) -> NormalBalance:
    """Return the normal balance side of an account."""
    return NORMAL_BALANCES[ACCOUNT_TYPES[account]]


def is_valid_account(name: object) -> bool:
    """Check whether a raw name belongs to the chart of accounts."""
    return isinstance(name, str) and name in VALID_ACCOUNT_NAMES
