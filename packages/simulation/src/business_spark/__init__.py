"""Business Spark - a turn-based business simulation with a double-entry ledger."""

__version__ = "0.1.0"

from business_spark.clients import ClaudeClient, GeminiClient, OllamaClient
from business_spark.config import configure_logging, get_settings
from business_spark.engine import TurnEngine, TurnPhase, TurnResult, TurnStatus
from business_spark.errors import (
    BusinessSparkError,
    GameOverError,
    GeneratorError,
    LedgerValidationError,
    TurnInProgressError,
    TurnSchemaError,
)
from business_spark.generator import (
    START_ACTION,
    LLMTurnGenerator,
    TurnGenerator,
    create_generator,
    parse_turn_proposal,
)
from business_spark.ledger import (
    Account,
    AccountType,
    JournalEntry,
    apply_entries,
    get_account_balance,
    validate_entries,
)
from business_spark.persistence import JsonFileStateStore, MemoryStateStore
from business_spark.state import BusinessState, OpsUpdates, TurnOutcome
from business_spark.statements import (
    balance_sheet,
    build_financial_statements,
    cash_flow_statement,
    income_statement,
)

__all__ = [
    # Version
    "__version__",
    # Ledger
    "Account",
    "AccountType",
    "JournalEntry",
    "validate_entries",
    "apply_entries",
    "get_account_balance",
    # Statements
    "income_statement",
    "balance_sheet",
    "cash_flow_statement",
    "build_financial_statements",
    # State
    "BusinessState",
    "OpsUpdates",
    "TurnOutcome",
    # Engine
    "TurnEngine",
    "TurnPhase",
    "TurnResult",
    "TurnStatus",
    # Generator & LLM clients
    "START_ACTION",
    "TurnGenerator",
    "LLMTurnGenerator",
    "create_generator",
    "parse_turn_proposal",
    "GeminiClient",
    "ClaudeClient",
    "OllamaClient",
    # Persistence
    "JsonFileStateStore",
    "MemoryStateStore",
    # Errors
    "BusinessSparkError",
    "TurnSchemaError",
    "LedgerValidationError",
    "GeneratorError",
    "TurnInProgressError",
    "GameOverError",
    # Config
    "get_settings",
    "configure_logging",
]
