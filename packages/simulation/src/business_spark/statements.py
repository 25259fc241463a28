"""Financial statements derived from the ledger.

Every statement is a pure function of the journal. Nothing here is
stored; the dashboard asks for fresh statements after each turn.

Rules:
- Assets = Liabilities + Equity for any ledger built from valid entries
- Operating + Investing + Financing cash flow = ledger Cash balance
- Read-only: these functions never post entries
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from decimal import Decimal

from business_spark.ledger.accounts import OPERATING_EXPENSE_ACCOUNTS, Account
from business_spark.ledger.entries import ZERO, JournalEntry
from business_spark.ledger.store import account_balances


@dataclass(frozen=True)
class StatementRow:
    """A display row; totals are flagged for emphasis."""

    label: str
    value: Decimal
    sub_rows: tuple["StatementRow", ...] = ()
    is_total: bool = False


@dataclass(frozen=True)
class IncomeStatement:
    revenue: Decimal
    cogs: Decimal
    gross_profit: Decimal
    operating_expenses: Decimal
    net_income: Decimal
    expense_breakdown: dict[Account, Decimal] = field(default_factory=dict)

    @property
    def rows(self) -> list[StatementRow]:
        return [
            StatementRow("Revenue", self.revenue),
            StatementRow("Cost of Goods Sold", self.cogs),
            StatementRow("Gross Profit", self.gross_profit, is_total=True),
            StatementRow(
                "Operating Expenses",
                self.operating_expenses,
                sub_rows=tuple(
                    StatementRow(account.value, amount)
                    for account, amount in self.expense_breakdown.items()
                ),
            ),
            StatementRow("Net Income", self.net_income, is_total=True),
        ]


@dataclass(frozen=True)
class BalanceSheet:
    assets: dict[Account, Decimal]
    liabilities: dict[Account, Decimal]
    owners_equity: Decimal
    retained_earnings: Decimal

    @property
    def total_assets(self) -> Decimal:
        return sum(self.assets.values(), ZERO)

    @property
    def total_liabilities(self) -> Decimal:
        return sum(self.liabilities.values(), ZERO)

    @property
    def total_equity(self) -> Decimal:
        return self.owners_equity + self.retained_earnings

    @property
    def is_balanced(self) -> bool:
        return self.total_assets == self.total_liabilities + self.total_equity

    @property
    def asset_rows(self) -> list[StatementRow]:
        rows = [StatementRow(account.value, amount) for account, amount in self.assets.items()]
        rows.append(StatementRow("Total Assets", self.total_assets, is_total=True))
        return rows

    @property
    def liability_rows(self) -> list[StatementRow]:
        rows = [
            StatementRow(account.value, amount) for account, amount in self.liabilities.items()
        ]
        rows.append(StatementRow("Total Liabilities", self.total_liabilities, is_total=True))
        return rows

    @property
    def equity_rows(self) -> list[StatementRow]:
        return [
            StatementRow(Account.OWNERS_EQUITY.value, self.owners_equity),
            StatementRow(Account.RETAINED_EARNINGS.value, self.retained_earnings),
            StatementRow("Total Equity", self.total_equity, is_total=True),
        ]


@dataclass(frozen=True)
class CashFlowStatement:
    net_income: Decimal
    depreciation: Decimal
    change_in_receivables: Decimal
    change_in_inventory: Decimal
    change_in_payables: Decimal
    operating: Decimal
    investing: Decimal
    financing: Decimal

    @property
    def net_change(self) -> Decimal:
        return self.operating + self.investing + self.financing

    @property
    def rows(self) -> list[StatementRow]:
        return [
            StatementRow(
                "Operating Activities",
                self.operating,
                sub_rows=(
                    StatementRow("Net Income", self.net_income),
                    StatementRow("Add: Depreciation", self.depreciation),
                    StatementRow("Change in Accounts Receivable", -self.change_in_receivables),
                    StatementRow("Change in Inventory", -self.change_in_inventory),
                    StatementRow("Change in Accounts Payable", self.change_in_payables),
                ),
            ),
            StatementRow("Investing Activities", self.investing),
            StatementRow("Financing Activities", self.financing),
            StatementRow("Net Change in Cash", self.net_change, is_total=True),
        ]


@dataclass(frozen=True)
class TrialBalanceLine:
    account: Account
    debits: Decimal
    credits: Decimal

    @property
    def balance(self) -> Decimal:
        return self.debits - self.credits


@dataclass(frozen=True)
class TrialBalance:
    lines: tuple[TrialBalanceLine, ...]

    @property
    def total_debits(self) -> Decimal:
        return sum((line.debits for line in self.lines), ZERO)

    @property
    def total_credits(self) -> Decimal:
        return sum((line.credits for line in self.lines), ZERO)

    @property
    def is_balanced(self) -> bool:
        return self.total_debits == self.total_credits


@dataclass(frozen=True)
class FinancialStatements:
    income_statement: IncomeStatement
    balance_sheet: BalanceSheet
    cash_flow: CashFlowStatement


def income_statement(ledger: Iterable[JournalEntry]) -> IncomeStatement:
    """Build the income statement.

    Revenue is credit-normal, so its debit-minus-credit balance is flipped
    to read positive. Expenses are debit-normal and used as-is.
    """
    balances = account_balances(ledger)
    revenue = -balances[Account.SALES_REVENUE]
    cogs = balances[Account.COGS]
    gross_profit = revenue - cogs
    breakdown = {account: balances[account] for account in OPERATING_EXPENSE_ACCOUNTS}
    operating_expenses = sum(breakdown.values(), ZERO)

    return IncomeStatement(
        revenue=revenue,
        cogs=cogs,
        gross_profit=gross_profit,
        operating_expenses=operating_expenses,
        net_income=gross_profit - operating_expenses,
        expense_breakdown=breakdown,
    )


def balance_sheet(ledger: Sequence[JournalEntry]) -> BalanceSheet:
    """Build the balance sheet.

    Current-period net income has not been closed to Retained Earnings,
    so it is added to the retained earnings line here. That closing step
    is what makes Assets = Liabilities + Equity hold at every point.
    """
    balances = account_balances(ledger)
    net_income = income_statement(ledger).net_income

    return BalanceSheet(
        assets={
            Account.CASH: balances[Account.CASH],
            Account.ACCOUNTS_RECEIVABLE: balances[Account.ACCOUNTS_RECEIVABLE],
            Account.INVENTORY: balances[Account.INVENTORY],
            Account.EQUIPMENT: balances[Account.EQUIPMENT],
        },
        liabilities={
            Account.ACCOUNTS_PAYABLE: -balances[Account.ACCOUNTS_PAYABLE],
            Account.LOANS_PAYABLE: -balances[Account.LOANS_PAYABLE],
        },
        owners_equity=-balances[Account.OWNERS_EQUITY],
        retained_earnings=-balances[Account.RETAINED_EARNINGS] + net_income,
    )


def cash_flow_statement(ledger: Sequence[JournalEntry]) -> CashFlowStatement:
    """Build the cash-flow statement with the indirect method.

    The ledger covers a single period starting from zero, so every
    "change in" figure is simply the account's current balance.

    Equipment is carried net of depreciation (there is no accumulated
    depreciation account), so capital expenditure is the change in
    Equipment plus the depreciation written off it. Without that gross-up
    the depreciation add-back would be counted twice.
    """
    balances = account_balances(ledger)
    net_income = income_statement(ledger).net_income
    depreciation = balances[Account.DEPRECIATION]

    change_in_receivables = balances[Account.ACCOUNTS_RECEIVABLE]
    change_in_inventory = balances[Account.INVENTORY]
    change_in_payables = -balances[Account.ACCOUNTS_PAYABLE]

    operating = (
        net_income
        + depreciation
        - change_in_receivables
        - change_in_inventory
        + change_in_payables
    )
    investing = -(balances[Account.EQUIPMENT] + depreciation)
    # Owner draws booked against Retained Earnings are financing outflows
    financing = (
        -balances[Account.OWNERS_EQUITY]
        - balances[Account.LOANS_PAYABLE]
        - balances[Account.RETAINED_EARNINGS]
    )

    return CashFlowStatement(
        net_income=net_income,
        depreciation=depreciation,
        change_in_receivables=change_in_receivables,
        change_in_inventory=change_in_inventory,
        change_in_payables=change_in_payables,
        operating=operating,
        investing=investing,
        financing=financing,
    )


def trial_balance(ledger: Iterable[JournalEntry]) -> TrialBalance:
    """Per-account debit and credit totals."""
    debits = {account: ZERO for account in Account}
    credits = {account: ZERO for account in Account}
    for entry in ledger:
        debits[Account(entry.debit_account)] += entry.amount
        credits[Account(entry.credit_account)] += entry.amount

    return TrialBalance(
        lines=tuple(
            TrialBalanceLine(account=account, debits=debits[account], credits=credits[account])
            for account in Account
        )
    )


def build_financial_statements(ledger: Sequence[JournalEntry]) -> FinancialStatements:
    """All three statements for the same ledger."""
    return FinancialStatements(
        income_statement=income_statement(ledger),
        balance_sheet=balance_sheet(ledger),
        cash_flow=cash_flow_statement(ledger),
    )


def format_currency(amount: Decimal) -> str:
    """Format an amount as US dollars, e.g. ``-$1,234.56``."""
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount):,.2f}"
