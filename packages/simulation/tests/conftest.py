"""Pytest configuration and fixtures."""

import os
from decimal import Decimal
from typing import Any
from unittest.mock import AsyncMock

import pytest

# Set test environment variables before importing settings
os.environ.setdefault("GOOGLE_API_KEY", "test-key")
os.environ.setdefault("ANTHROPIC_API_KEY", "sk-ant-test")

from business_spark.engine import TurnEngine  # noqa: E402
from business_spark.events import EventPublisher  # noqa: E402
from business_spark.ledger import JournalEntry  # noqa: E402
from business_spark.persistence import MemoryStateStore  # noqa: E402


def entry(debit: str, credit: str, amount: Any, description: str = "") -> JournalEntry:
    """Shorthand for building a journal entry in tests."""
    return JournalEntry(
        debit_account=debit,
        credit_account=credit,
        amount=Decimal(str(amount)),
        description=description,
    )


def proposal(
    entries: list[dict[str, Any]] | None = None,
    ops_updates: dict[str, Any] | None = None,
    narrative: str = "The week went by.",
) -> dict[str, Any]:
    """Build a generator response payload."""
    return {
        "narrative_outcome": narrative,
        "mentor_feedback": "Cash is not profit.",
        "journal_entries": entries if entries is not None else [],
        "ops_updates": ops_updates or {},
        "next_options": [
            {"id": "opt_1", "label": "Buy filament", "type": "operational",
             "estimated_cost_preview": "$200"},
            {"id": "opt_2", "label": "Run an Instagram ad", "type": "strategic",
             "estimated_cost_preview": "$150"},
            {"id": "opt_3", "label": "Fix the extruder", "type": "crisis",
             "estimated_cost_preview": "$80"},
        ],
    }


@pytest.fixture
def funding_proposal() -> dict[str, Any]:
    """First turn: the owner puts $1000 into the business."""
    return proposal(
        entries=[
            {"debit_account": "Cash", "credit_account": "Owner's Equity",
             "amount": 1000, "description": "Owner capital contribution"},
        ],
        ops_updates={"new_week_number": 1},
        narrative="You open the doors of your 3D printing shop.",
    )


@pytest.fixture
def mock_generator():
    """Generator whose generate_turn is an AsyncMock."""
    generator = AsyncMock()
    generator.generate_turn = AsyncMock()
    return generator


@pytest.fixture
def memory_store() -> MemoryStateStore:
    return MemoryStateStore()


@pytest.fixture
def publisher() -> EventPublisher:
    return EventPublisher()


@pytest.fixture
def engine(mock_generator, memory_store, publisher) -> TurnEngine:
    return TurnEngine(mock_generator, store=memory_store, publisher=publisher, timeout=5.0)
