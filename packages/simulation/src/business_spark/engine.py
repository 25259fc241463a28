"""Turn engine - drives one game session turn by turn.

The engine is a small state machine around a single asynchronous call:

    IDLE/ERROR --process_turn--> LOADING --success--> IDLE
                                         --failure--> ERROR
                                         --cancel---> IDLE

Each submission gets a turn token. Cancelling, resetting, loading or
starting a newer turn moves the token on, and a generator response
carrying an old token is dropped instead of being applied to a state it
was never generated for.

A turn commits in full (ledger, operational counters, history) or not
at all. Every turn-level error is caught here and reported through
``last_error``; nothing raised by the generator escapes ``process_turn``.
"""

import asyncio
import dataclasses
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

import structlog

from business_spark.config import get_settings
from business_spark.errors import (
    BusinessSparkError,
    GameOverError,
    GeneratorError,
    LedgerValidationError,
    TurnInProgressError,
    TurnSchemaError,
)
from business_spark.events import (
    EventPublisher,
    game_loaded,
    game_over,
    game_reset,
    turn_cancelled,
    turn_completed,
    turn_failed,
    turn_stale_dropped,
    turn_started,
)
from business_spark.generator import START_ACTION, TurnGenerator, parse_turn_proposal
from business_spark.ledger import apply_entries, require_valid
from business_spark.persistence import PersistenceError, StateStore
from business_spark.state import BusinessState, TurnOutcome, apply_ops_updates
from business_spark.statements import (
    FinancialStatements,
    StatementRow,
    build_financial_statements,
    format_currency,
)

logger = structlog.get_logger(__name__)

GENERIC_ERROR = "Something went wrong with the simulation. Please try again."


class TurnPhase(str, Enum):
    """Where the engine is in the turn cycle."""

    IDLE = "idle"
    LOADING = "loading"
    ERROR = "error"  # idle, with last_error set


class TurnStatus(str, Enum):
    """How a single process_turn call ended."""

    COMMITTED = "committed"
    REJECTED = "rejected"
    STALE = "stale"


@dataclass(frozen=True)
class TurnResult:
    """Result of one process_turn call."""

    status: TurnStatus
    outcome: TurnOutcome | None = None
    error: str | None = None

    @property
    def committed(self) -> bool:
        return self.status == TurnStatus.COMMITTED


class TurnEngine:
    """Runs turns for one business.

    Usage:
        engine = TurnEngine(create_generator(), store=JsonFileStateStore())
        engine.load_saved()
        result = await engine.process_turn(START_ACTION)
        statements = engine.statements()
    """

    def __init__(
        self,
        generator: TurnGenerator,
        store: StateStore | None = None,
        publisher: EventPublisher | None = None,
        timeout: float | None = None,
    ):
        settings = get_settings()
        self._generator = generator
        self._store = store
        self._publisher = publisher or EventPublisher()
        self._timeout = timeout or settings.turn_timeout_seconds

        self._state = BusinessState()
        self._phase = TurnPhase.IDLE
        self._last_error: str | None = None
        self._turn_token = 0

        self._logger = logger.bind(component="turn_engine")

    # -------------------------------------------------------------------------
    # Snapshot
    # -------------------------------------------------------------------------

    @property
    def state(self) -> BusinessState:
        """Current state snapshot (immutable)."""
        return self._state

    @property
    def phase(self) -> TurnPhase:
        return self._phase

    @property
    def last_error(self) -> str | None:
        return self._last_error

    @property
    def turn_token(self) -> int:
        return self._turn_token

    @property
    def is_loading(self) -> bool:
        return self._phase == TurnPhase.LOADING

    @property
    def publisher(self) -> EventPublisher:
        return self._publisher

    def statements(self) -> FinancialStatements:
        """Financial statements for the ledger as it stands now."""
        return build_financial_statements(self._state.ledger)

    # -------------------------------------------------------------------------
    # Turn processing
    # -------------------------------------------------------------------------

    async def process_turn(self, action: str) -> TurnResult:
        """Run one turn for the given player action.

        Args:
            action: Label of the chosen option, or START_ACTION for the
                first turn.

        Returns:
            TurnResult. Failures are reported here and in ``last_error``,
            never raised.
        """
        if self._phase == TurnPhase.LOADING:
            error = TurnInProgressError("A turn is already being processed")
            self._logger.warning("turn_rejected_in_progress", token=self._turn_token)
            return TurnResult(status=TurnStatus.REJECTED, error=str(error))

        if self._state.game_over:
            error = GameOverError("The business is bankrupt. Reset the game to play again.")
            self._last_error = str(error)
            self._phase = TurnPhase.ERROR
            self._logger.info("turn_rejected_game_over", week=self._state.week)
            return TurnResult(status=TurnStatus.REJECTED, error=str(error))

        self._turn_token += 1
        token = self._turn_token
        self._state = dataclasses.replace(self._state, is_loading=True)
        self._phase = TurnPhase.LOADING
        self._last_error = None
        base_state = self._state

        log = self._logger.bind(token=token, week=base_state.week)
        log.info("turn_started", action=action[:100])
        self._publisher.publish(turn_started(token, base_state.week, action))

        try:
            raw = await asyncio.wait_for(
                self._generator.generate_turn(base_state, action), timeout=self._timeout
            )
        except asyncio.CancelledError:
            if token == self._turn_token:
                self._finish_cancel()
            raise
        except TimeoutError:
            return self._fail(
                token, action, GeneratorError(f"Generator timed out after {self._timeout}s")
            )
        except BusinessSparkError as e:
            return self._fail(token, action, e)
        except Exception as e:
            log.exception("generator_unexpected_error", error=str(e))
            return self._fail(token, action, GeneratorError(str(e)))

        if token != self._turn_token:
            log.warning("stale_response_dropped", current_token=self._turn_token)
            self._publisher.publish(turn_stale_dropped(token, self._turn_token))
            return TurnResult(status=TurnStatus.STALE, error="Response arrived for a stale turn")

        try:
            outcome, next_state = self._build_next_state(base_state, raw, action)
        except BusinessSparkError as e:
            return self._fail(token, action, e)
        except Exception as e:
            log.exception("proposal_unexpected_error", error=str(e))
            return self._fail(token, action, GeneratorError(str(e)))

        return self._commit(token, outcome, next_state)

    def _build_next_state(
        self, base_state: BusinessState, raw: Any, action: str
    ) -> tuple[TurnOutcome, BusinessState]:
        """Parse, validate and apply a proposal without touching the engine.

        Raises:
            TurnSchemaError: If the proposal has the wrong shape.
            LedgerValidationError: If an entry breaks the chart of accounts.
        """
        outcome = parse_turn_proposal(raw, action=action)
        require_valid(outcome.journal_entries)

        next_state = apply_entries(base_state, outcome.journal_entries)
        next_state = apply_ops_updates(next_state, outcome.ops_updates)
        next_state = dataclasses.replace(
            next_state,
            turn_history=base_state.turn_history + (outcome,),
            is_loading=False,
        )
        return outcome, next_state

    def _commit(self, token: int, outcome: TurnOutcome, next_state: BusinessState) -> TurnResult:
        was_game_over = self._state.game_over
        self._state = next_state
        self._phase = TurnPhase.IDLE
        self._last_error = None

        self._logger.info(
            "turn_committed",
            token=token,
            week=next_state.week,
            entries=len(outcome.journal_entries),
            cash=str(next_state.cash),
        )
        self._save()
        self._publisher.publish(
            turn_completed(
                token,
                next_state.week,
                outcome.action,
                str(next_state.cash),
                len(outcome.journal_entries),
                outcome.narrative_outcome,
            )
        )
        if next_state.game_over and not was_game_over:
            self._publisher.publish(game_over(next_state.week, str(next_state.cash)))

        return TurnResult(status=TurnStatus.COMMITTED, outcome=outcome)

    def _fail(self, token: int, action: str, error: BusinessSparkError) -> TurnResult:
        if token != self._turn_token:
            self._logger.info("stale_failure_ignored", token=token, error=str(error))
            return TurnResult(status=TurnStatus.STALE, error=str(error))

        if isinstance(error, LedgerValidationError):
            kind = "validation"
            message = f"AI Accountant Error: {error}"
        elif isinstance(error, TurnSchemaError):
            kind = "schema"
            message = str(error)
        else:
            kind = "transport"
            message = GENERIC_ERROR

        self._state = dataclasses.replace(self._state, is_loading=False)
        self._phase = TurnPhase.ERROR
        self._last_error = message

        self._logger.warning("turn_failed", token=token, kind=kind, error=str(error))
        self._publisher.publish(turn_failed(token, self._state.week, action, message, kind))
        return TurnResult(status=TurnStatus.REJECTED, error=message)

    # -------------------------------------------------------------------------
    # Session control
    # -------------------------------------------------------------------------

    def cancel(self) -> bool:
        """Abandon the turn in flight.

        The generator call itself keeps running; its response will carry
        an old token and be dropped when it arrives.

        Returns:
            True if a turn was loading.
        """
        if self._phase != TurnPhase.LOADING:
            return False
        self._turn_token += 1
        self._finish_cancel()
        return True

    def _finish_cancel(self) -> None:
        self._state = dataclasses.replace(self._state, is_loading=False)
        self._phase = TurnPhase.IDLE
        self._logger.info("turn_cancelled", token=self._turn_token)
        self._publisher.publish(turn_cancelled(self._turn_token, self._state.week))

    def reset_game(self) -> None:
        """Start over from the zero state. Callers confirm with the player."""
        self._turn_token += 1
        self._state = BusinessState()
        self._phase = TurnPhase.IDLE
        self._last_error = None

        self._logger.info("game_reset", token=self._turn_token)
        self._save()
        self._publisher.publish(game_reset())

    def load_state(self, saved: Mapping[str, Any] | BusinessState) -> None:
        """Replace the session with saved data merged over the zero state.

        ``is_loading`` always comes back False, whatever was saved. The
        saved ledger goes through the same chart-of-accounts check as a
        live turn.

        Raises:
            PersistenceError: If the save is malformed or its ledger is
                invalid. The current session is left untouched.
        """
        data = saved.to_dict() if isinstance(saved, BusinessState) else saved
        try:
            state = BusinessState.from_dict(data)
            require_valid(state.ledger)
        except LedgerValidationError as e:
            raise PersistenceError(f"Saved ledger is invalid: {e}") from e
        except (KeyError, TypeError, AttributeError, ValueError) as e:
            raise PersistenceError(f"Saved game is malformed: {e!r}") from e

        self._turn_token += 1
        self._state = state
        self._phase = TurnPhase.IDLE
        self._last_error = None

        self._logger.info(
            "state_loaded", week=self._state.week, turns=len(self._state.turn_history)
        )
        self._publisher.publish(game_loaded(self._state.week, len(self._state.turn_history)))

    def load_saved(self) -> bool:
        """Load the session from the store, if one was saved.

        Returns:
            True if a saved game was loaded.

        Raises:
            PersistenceError: If the saved game cannot be read or loaded.
        """
        if self._store is None:
            return False
        data = self._store.load()
        if data is None:
            return False
        self.load_state(data)
        return True

    def _save(self) -> None:
        """Fire-and-forget save; a failed write never undoes a turn."""
        if self._store is None:
            return
        try:
            self._store.save(self._state)
        except Exception as e:
            self._logger.error("state_save_failed", error=str(e))


# =============================================================================
# Command-line game
# =============================================================================


def _print_dashboard(engine: TurnEngine) -> None:
    state = engine.state
    machines = ", ".join(f"{m.name} {m.health:.0f}%" for m in state.machines)
    print(f"\n{'=' * 60}")
    print(
        f"Week {state.week} | Cash {format_currency(state.cash)} | "
        f"Inventory {state.inventory_kg:g} kg | {machines}"
    )
    print("=" * 60)

    last = state.last_outcome
    if last:
        print(f"\n{last.narrative_outcome}")
        if last.mentor_feedback:
            print(f"\nMentor: {last.mentor_feedback}")
    if engine.last_error:
        print(f"\n[!] {engine.last_error}")


def _print_statements(engine: TurnEngine) -> None:
    def show(rows: list[StatementRow], level: int = 0) -> None:
        for row in rows:
            label = ("  " * level) + row.label
            line = f"{label:<40}{format_currency(row.value):>16}"
            print(f"{'-' * 56}\n{line}" if row.is_total else line)
            show(list(row.sub_rows), level + 1)

    statements = engine.statements()
    print("\nINCOME STATEMENT")
    show(statements.income_statement.rows)
    print("\nBALANCE SHEET")
    show(statements.balance_sheet.asset_rows)
    show(statements.balance_sheet.liability_rows)
    show(statements.balance_sheet.equity_rows)
    print("\nCASH FLOW STATEMENT")
    show(statements.cash_flow.rows)


async def _prompt(text: str) -> str:
    return (await asyncio.to_thread(input, text)).strip()


async def main() -> None:
    """Play Business Spark in the terminal.

    Usage:
        python -m business_spark
        python -m business_spark --provider=claude
        business-spark --reset --state-file=save.json
    """
    import argparse
    import sys

    from business_spark.config import configure_logging
    from business_spark.generator import create_generator
    from business_spark.persistence import JsonFileStateStore

    parser = argparse.ArgumentParser(
        description="Business Spark - learn accounting by running a 3D printing shop"
    )
    parser.add_argument(
        "--provider",
        choices=["gemini", "claude", "ollama"],
        default=None,
        help="LLM provider (default: LLM_PROVIDER setting)",
    )
    parser.add_argument("--state-file", default=None, help="Where to save the game")
    parser.add_argument("--reset", action="store_true", help="Start a new game")
    parser.add_argument(
        "--serve-events", action="store_true", help="Publish turn events over WebSocket"
    )
    args = parser.parse_args()

    configure_logging()

    engine = TurnEngine(
        create_generator(args.provider),
        store=JsonFileStateStore(args.state_file),
    )
    if args.serve_events:
        await engine.publisher.start()

    try:
        if args.reset:
            engine.reset_game()
        else:
            try:
                engine.load_saved()
            except PersistenceError as e:
                logger.warning("saved_game_unreadable", error=str(e))
                print(f"Could not load the saved game ({e}). Starting a new one.")

        while True:
            _print_dashboard(engine)

            if engine.state.game_over:
                print("\nGAME OVER: the business ran out of cash.")
                choice = await _prompt("[r]estart or [q]uit? ")
                if choice.lower() == "r":
                    engine.reset_game()
                    continue
                break

            options = engine.state.next_options
            if not engine.state.has_started:
                print(f"\n  1. {START_ACTION}")
            else:
                print()
                for index, option in enumerate(options, start=1):
                    print(f"  {index}. {option.label} ({option.estimated_cost_preview})")
            print("  s. Financial statements   q. Quit   (or type your own action)")

            choice = await _prompt("> ")
            if not choice:
                continue
            if choice.lower() == "q":
                break
            if choice.lower() == "s":
                _print_statements(engine)
                continue

            if not engine.state.has_started:
                action = START_ACTION
            elif choice.isdigit() and 1 <= int(choice) <= len(options):
                action = options[int(choice) - 1].label
            else:
                action = choice

            print("\nAccountants are calculating...")
            await engine.process_turn(action)

    except (KeyboardInterrupt, EOFError):
        logger.info("game_interrupted")
    except Exception as e:
        logger.exception("game_error", error=str(e))
        sys.exit(1)
    finally:
        await engine.publisher.stop()

