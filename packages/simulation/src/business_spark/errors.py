"""Exception hierarchy for turn processing.

Every error raised while processing a turn derives from BusinessSparkError
so the turn engine can catch them at one boundary and surface a single
message to the player.
"""

from typing import Any


class BusinessSparkError(Exception):
    """Base exception for Business Spark errors."""

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.details = details


class TurnSchemaError(BusinessSparkError):
    """Generator response is missing fields or has the wrong shape."""

    pass


class LedgerValidationError(BusinessSparkError):
    """Proposed journal entries violate the chart of accounts."""

    def __init__(
        self,
        message: str,
        account: str | None = None,
        entry_index: int | None = None,
    ):
        super().__init__(message, details={"account": account, "entry_index": entry_index})
        self.account = account
        self.entry_index = entry_index


class GeneratorError(BusinessSparkError):
    """The narrative/transaction generator could not produce a response."""

    pass


class TurnInProgressError(BusinessSparkError):
    """A turn was submitted while another one is still loading."""

    pass


class GameOverError(BusinessSparkError):
    """A turn was submitted after the business went bankrupt."""

    pass
