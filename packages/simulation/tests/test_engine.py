"""Tests for the turn engine."""

import asyncio
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from business_spark.engine import GENERIC_ERROR, TurnEngine, TurnPhase, TurnStatus
from business_spark.errors import GeneratorError, TurnSchemaError
from business_spark.events import EventType
from business_spark.generator import START_ACTION
from business_spark.state import BusinessState
from conftest import entry, proposal


def funded_save(week: int = 2) -> dict:
    """A saved game one turn in, with $1000 in the bank."""
    state = BusinessState(
        cash=Decimal("1000.00"),
        ledger=(entry("Cash", "Owner's Equity", 1000, "Owner capital"),),
        week=week,
    )
    return state.to_dict()


@pytest.fixture
def events(publisher):
    received = []
    publisher.add_event_hook(received.append)
    return received


@pytest.fixture
def gate():
    return asyncio.Event()


@pytest.fixture
def slow_generator(mock_generator, gate, funding_proposal):
    """Generator that only answers once the gate is opened."""

    async def wait_then_answer(state, action):
        await gate.wait()
        return funding_proposal

    mock_generator.generate_turn.side_effect = wait_then_answer
    return mock_generator


class TestInitialState:
    """Tests for a fresh engine."""

    def test_starts_idle_with_zero_state(self, engine):
        assert engine.phase == TurnPhase.IDLE
        assert engine.state == BusinessState()
        assert engine.last_error is None
        assert engine.turn_token == 0
        assert not engine.is_loading

    def test_statements_for_empty_ledger(self, engine):
        statements = engine.statements()
        assert statements.balance_sheet.total_assets == 0


class TestSuccessfulTurn:
    """Tests for a committed turn."""

    @pytest.mark.asyncio
    async def test_first_turn_funds_business(self, engine, mock_generator, funding_proposal):
        mock_generator.generate_turn.return_value = funding_proposal

        result = await engine.process_turn(START_ACTION)

        assert result.committed
        assert result.outcome.action == START_ACTION
        assert engine.state.cash == Decimal("1000.00")
        assert engine.state.week == 1
        assert len(engine.state.ledger) == 1
        assert len(engine.state.turn_history) == 1
        assert engine.state.is_loading is False
        assert engine.phase == TurnPhase.IDLE
        assert engine.last_error is None

    @pytest.mark.asyncio
    async def test_generator_sees_current_state_and_action(
        self, engine, mock_generator, funding_proposal
    ):
        mock_generator.generate_turn.return_value = funding_proposal

        await engine.process_turn(START_ACTION)

        state_arg, action_arg = mock_generator.generate_turn.call_args.args
        assert state_arg.week == 0
        assert state_arg.is_loading is True
        assert action_arg == START_ACTION

    @pytest.mark.asyncio
    async def test_turns_accumulate(self, engine, mock_generator, funding_proposal):
        mock_generator.generate_turn.return_value = funding_proposal
        await engine.process_turn(START_ACTION)

        mock_generator.generate_turn.return_value = proposal(
            entries=[
                {"debit_account": "Equipment", "credit_account": "Cash", "amount": 600,
                 "description": "Second printer"},
            ],
            ops_updates={"new_week_number": 2, "new_machines": ["Printer #2"]},
        )
        await engine.process_turn("Buy a second printer")

        assert engine.state.cash == Decimal("400.00")
        assert engine.state.week == 2
        assert len(engine.state.machines) == 2
        assert engine.state.next_options[0].label == "Buy filament"
        assert engine.statements().cash_flow.investing == Decimal("-600.00")

    @pytest.mark.asyncio
    async def test_state_saved_after_commit(
        self, engine, mock_generator, memory_store, funding_proposal
    ):
        mock_generator.generate_turn.return_value = funding_proposal

        await engine.process_turn(START_ACTION)

        assert memory_store.save_count == 1
        assert memory_store.load()["week"] == 1
        assert memory_store.load()["is_loading"] is False

    @pytest.mark.asyncio
    async def test_save_failure_keeps_turn(self, mock_generator, funding_proposal):
        store = MagicMock()
        store.save.side_effect = OSError("disk full")
        engine = TurnEngine(mock_generator, store=store, timeout=5.0)
        mock_generator.generate_turn.return_value = funding_proposal

        result = await engine.process_turn(START_ACTION)

        assert result.committed
        assert engine.state.cash == Decimal("1000.00")
        assert engine.last_error is None

    @pytest.mark.asyncio
    async def test_events(self, engine, mock_generator, funding_proposal, events):
        mock_generator.generate_turn.return_value = funding_proposal

        await engine.process_turn(START_ACTION)

        assert [e.event_type for e in events] == [
            EventType.TURN_STARTED,
            EventType.TURN_COMPLETED,
        ]
        assert events[1].cash == "1000.00"
        assert events[1].data["entry_count"] == 1


class TestFailedTurn:
    """Failures leave the business exactly as it was."""

    @pytest.fixture
    def funded_engine(self, engine):
        engine.load_state(funded_save())
        return engine

    @pytest.mark.asyncio
    async def test_invalid_account_rejected(self, funded_engine, mock_generator, events):
        before = funded_engine.state
        mock_generator.generate_turn.return_value = proposal(
            entries=[
                {"debit_account": "Cash", "credit_account": "Sales Revenue", "amount": 100},
                {"debit_account": "Magic Dust", "credit_account": "Cash", "amount": 50},
            ]
        )

        result = await funded_engine.process_turn("Sell stuff")

        assert result.status == TurnStatus.REJECTED
        assert funded_engine.last_error == "AI Accountant Error: Invalid Debit Account: Magic Dust"
        assert funded_engine.phase == TurnPhase.ERROR
        assert funded_engine.state.ledger == before.ledger
        assert funded_engine.state.cash == before.cash
        assert funded_engine.state.week == before.week
        assert funded_engine.state.is_loading is False
        assert events[-1].event_type == EventType.TURN_FAILED
        assert events[-1].data["kind"] == "validation"

    @pytest.mark.asyncio
    async def test_negative_amount_rejected(self, funded_engine, mock_generator):
        mock_generator.generate_turn.return_value = proposal(
            entries=[{"debit_account": "Cash", "credit_account": "Sales Revenue", "amount": -5}]
        )

        await funded_engine.process_turn("Sell stuff")

        assert funded_engine.last_error.startswith("AI Accountant Error: Invalid Amount")
        assert funded_engine.state.cash == Decimal("1000.00")

    @pytest.mark.asyncio
    async def test_missing_journal_entries(self, funded_engine, mock_generator):
        payload = proposal()
        del payload["journal_entries"]
        mock_generator.generate_turn.return_value = payload

        result = await funded_engine.process_turn("Do nothing")

        assert result.error == "Invalid response: Missing journal_entries"
        assert funded_engine.last_error == "Invalid response: Missing journal_entries"
        assert len(funded_engine.state.ledger) == 1

    @pytest.mark.asyncio
    async def test_schema_error_raised_by_generator(self, funded_engine, mock_generator):
        mock_generator.generate_turn.side_effect = TurnSchemaError("Invalid response: bad shape")

        await funded_engine.process_turn("Do nothing")

        assert funded_engine.last_error == "Invalid response: bad shape"

    @pytest.mark.asyncio
    async def test_transport_error_is_generic(self, funded_engine, mock_generator):
        mock_generator.generate_turn.side_effect = GeneratorError("Failed to parse (JSON)")

        await funded_engine.process_turn("Do nothing")

        assert funded_engine.last_error == GENERIC_ERROR
        assert funded_engine.phase == TurnPhase.ERROR

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_contained(self, funded_engine, mock_generator):
        mock_generator.generate_turn.side_effect = RuntimeError("boom")

        result = await funded_engine.process_turn("Do nothing")

        assert result.status == TurnStatus.REJECTED
        assert funded_engine.last_error == GENERIC_ERROR

    @pytest.mark.asyncio
    async def test_amount_too_large_for_cents_rejected(
        self, funded_engine, mock_generator, funding_proposal
    ):
        mock_generator.generate_turn.return_value = proposal(
            entries=[
                {"debit_account": "Cash", "credit_account": "Owner's Equity", "amount": 1e30},
            ]
        )

        result = await funded_engine.process_turn("Raise a fortune")

        assert result.status == TurnStatus.REJECTED
        assert funded_engine.last_error.startswith("Invalid response")
        assert funded_engine.phase == TurnPhase.ERROR
        assert funded_engine.state.is_loading is False
        assert funded_engine.state.cash == Decimal("1000.00")

        mock_generator.generate_turn.return_value = funding_proposal
        assert (await funded_engine.process_turn("Raise a normal amount")).committed

    @pytest.mark.asyncio
    async def test_unexpected_error_while_applying_is_contained(
        self, funded_engine, mock_generator, funding_proposal, monkeypatch
    ):
        def broken_ops(state, ops):
            raise RuntimeError("ops blew up")

        monkeypatch.setattr("business_spark.engine.apply_ops_updates", broken_ops)
        mock_generator.generate_turn.return_value = funding_proposal

        result = await funded_engine.process_turn("Do something")

        assert result.status == TurnStatus.REJECTED
        assert funded_engine.last_error == GENERIC_ERROR
        assert funded_engine.phase == TurnPhase.ERROR
        assert funded_engine.state.is_loading is False
        assert len(funded_engine.state.ledger) == 1

    @pytest.mark.asyncio
    async def test_timeout(self, mock_generator, memory_store):
        async def never_answers(state, action):
            await asyncio.sleep(10)

        mock_generator.generate_turn.side_effect = never_answers
        engine = TurnEngine(mock_generator, store=memory_store, timeout=0.01)

        result = await engine.process_turn(START_ACTION)

        assert result.status == TurnStatus.REJECTED
        assert engine.last_error == GENERIC_ERROR
        assert engine.is_loading is False
        assert memory_store.save_count == 0

    @pytest.mark.asyncio
    async def test_error_clears_on_next_success(
        self, funded_engine, mock_generator, funding_proposal
    ):
        mock_generator.generate_turn.side_effect = GeneratorError("down")
        await funded_engine.process_turn("Try")
        assert funded_engine.last_error is not None

        mock_generator.generate_turn.side_effect = None
        mock_generator.generate_turn.return_value = funding_proposal
        result = await funded_engine.process_turn("Try again")

        assert result.committed
        assert funded_engine.last_error is None
        assert funded_engine.phase == TurnPhase.IDLE


class TestConcurrency:
    """Tests for overlapping submissions, cancellation and stale responses."""

    @pytest.mark.asyncio
    async def test_second_submission_rejected_while_loading(self, engine, slow_generator, gate):
        task = asyncio.create_task(engine.process_turn(START_ACTION))
        await asyncio.sleep(0)
        assert engine.is_loading
        assert engine.state.is_loading

        second = await engine.process_turn("Impatient click")

        assert second.status == TurnStatus.REJECTED
        assert slow_generator.generate_turn.call_count == 1

        gate.set()
        first = await task
        assert first.committed
        assert len(engine.state.ledger) == 1

    @pytest.mark.asyncio
    async def test_cancelled_turn_response_is_dropped(self, engine, slow_generator, gate, events):
        task = asyncio.create_task(engine.process_turn(START_ACTION))
        await asyncio.sleep(0)

        assert engine.cancel() is True
        assert engine.phase == TurnPhase.IDLE
        assert not engine.state.is_loading

        gate.set()
        result = await task

        assert result.status == TurnStatus.STALE
        assert engine.state.ledger == ()
        assert engine.state.cash == 0
        assert EventType.TURN_STALE_DROPPED in [e.event_type for e in events]

    @pytest.mark.asyncio
    async def test_cancelled_response_arriving_after_new_turn_is_dropped(
        self, engine, mock_generator, gate, funding_proposal
    ):
        async def first_waits_second_answers(state, action):
            if action == START_ACTION:
                await gate.wait()
                return proposal(
                    entries=[
                        {"debit_account": "Cash", "credit_account": "Loans Payable",
                         "amount": 9999, "description": "Abandoned loan"},
                    ]
                )
            return funding_proposal

        mock_generator.generate_turn.side_effect = first_waits_second_answers

        abandoned = asyncio.create_task(engine.process_turn(START_ACTION))
        await asyncio.sleep(0)
        assert engine.cancel() is True

        second = await engine.process_turn("Open with owner capital")
        assert second.committed

        gate.set()
        late = await abandoned

        assert late.status == TurnStatus.STALE
        assert [e.description for e in engine.state.ledger] == ["Owner capital contribution"]
        assert engine.state.cash == Decimal("1000.00")
        assert len(engine.state.turn_history) == 1
        assert engine.phase == TurnPhase.IDLE

    @pytest.mark.asyncio
    async def test_cancel_when_idle(self, engine):
        assert engine.cancel() is False

    @pytest.mark.asyncio
    async def test_reset_during_load_wins(self, engine, slow_generator, gate, memory_store):
        task = asyncio.create_task(engine.process_turn(START_ACTION))
        await asyncio.sleep(0)

        engine.reset_game()
        gate.set()
        result = await task

        assert result.status == TurnStatus.STALE
        assert engine.state == BusinessState()
        assert memory_store.save_count == 1

    @pytest.mark.asyncio
    async def test_task_cancellation_clears_loading(self, engine, slow_generator):
        task = asyncio.create_task(engine.process_turn(START_ACTION))
        await asyncio.sleep(0)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert engine.phase == TurnPhase.IDLE
        assert engine.state.is_loading is False

    @pytest.mark.asyncio
    async def test_turn_tokens_increase(self, engine, mock_generator, funding_proposal):
        mock_generator.generate_turn.return_value = funding_proposal

        await engine.process_turn(START_ACTION)
        await engine.process_turn("Again")

        assert engine.turn_token == 2


class TestGameOver:
    """Tests for bankruptcy."""

    @pytest.mark.asyncio
    async def test_negative_cash_after_week_one_ends_game(self, engine, mock_generator, events):
        engine.load_state(funded_save(week=2))
        mock_generator.generate_turn.return_value = proposal(
            entries=[{"debit_account": "Salaries", "credit_account": "Cash", "amount": 1500}],
            ops_updates={"new_week_number": 3},
        )

        result = await engine.process_turn("Hire three engineers")

        assert result.committed
        assert engine.state.cash == Decimal("-500.00")
        assert engine.state.game_over is True
        assert events[-1].event_type == EventType.GAME_OVER

    @pytest.mark.asyncio
    async def test_negative_cash_in_week_one_is_allowed(self, engine, mock_generator):
        engine.load_state(funded_save(week=1))
        mock_generator.generate_turn.return_value = proposal(
            entries=[{"debit_account": "Equipment", "credit_account": "Cash", "amount": 1200}],
        )

        await engine.process_turn("Buy a big printer")

        assert engine.state.cash == Decimal("-200.00")
        assert engine.state.game_over is False

    @pytest.mark.asyncio
    async def test_no_turns_after_game_over(self, engine, mock_generator):
        save = funded_save(week=4)
        save["game_over"] = True
        engine.load_state(save)

        result = await engine.process_turn("Keep going")

        assert result.status == TurnStatus.REJECTED
        assert "bankrupt" in engine.last_error
        mock_generator.generate_turn.assert_not_called()

    @pytest.mark.asyncio
    async def test_reset_starts_over(self, engine, mock_generator, funding_proposal):
        save = funded_save(week=4)
        save["game_over"] = True
        engine.load_state(save)

        engine.reset_game()
        mock_generator.generate_turn.return_value = funding_proposal
        result = await engine.process_turn(START_ACTION)

        assert result.committed
        assert engine.state.game_over is False
        assert engine.state.cash == Decimal("1000.00")


class TestLoading:
    """Tests for restoring saved games."""

    def test_load_state_forces_not_loading(self, engine, events):
        save = funded_save()
        save["is_loading"] = True

        engine.load_state(save)

        assert engine.state.is_loading is False
        assert engine.phase == TurnPhase.IDLE
        assert engine.state.cash == Decimal("1000.00")
        assert events[-1].event_type == EventType.GAME_LOADED

    def test_load_state_accepts_business_state(self, engine):
        engine.load_state(BusinessState(week=3))
        assert engine.state.week == 3

    def test_load_saved_from_store(self, mock_generator, memory_store):
        memory_store.save(BusinessState.from_dict(funded_save(week=5)))
        engine = TurnEngine(mock_generator, store=memory_store)

        assert engine.load_saved() is True
        assert engine.state.week == 5

    def test_load_saved_with_nothing_saved(self, engine):
        assert engine.load_saved() is False
        assert engine.state == BusinessState()

    def test_load_saved_without_store(self, mock_generator):
        assert TurnEngine(mock_generator).load_saved() is False


class TestTerminalOutput:
    """Tests for the terminal dashboard helpers."""

    @pytest.mark.asyncio
    async def test_dashboard_and_statements(self, engine, mock_generator, funding_proposal, capsys):
        from business_spark.engine import _print_dashboard, _print_statements

        mock_generator.generate_turn.return_value = funding_proposal
        await engine.process_turn(START_ACTION)

        _print_dashboard(engine)
        _print_statements(engine)
        out = capsys.readouterr().out

        assert "Week 1 | Cash $1,000.00" in out
        assert "You open the doors" in out
        assert "Mentor: Cash is not profit." in out
        assert "BALANCE SHEET" in out
        assert "Financing Activities" in out
