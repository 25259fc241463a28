"""Business state, turn outcomes and their plain-data forms.

State objects are frozen. The turn engine commits a turn by building a
new BusinessState and swapping it in, so a rejected turn never leaves a
half-applied state behind.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any

from business_spark.ledger.entries import ZERO, JournalEntry, to_money
from business_spark.ledger.store import Ledger, compute_cash

MAX_MACHINE_HEALTH = 100.0
STARTER_MACHINE = "Printer #1"


class OptionType(str, Enum):
    """Flavour of a next-turn option offered by the generator."""

    STRATEGIC = "strategic"
    OPERATIONAL = "operational"
    CRISIS = "crisis"


@dataclass(frozen=True)
class Machine:
    """A 3D printer on the shop floor."""

    name: str
    health: float = MAX_MACHINE_HEALTH

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "health": self.health}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Machine:
        return cls(name=str(data["name"]), health=float(data.get("health", MAX_MACHINE_HEALTH)))


@dataclass(frozen=True)
class NextOption:
    """A choice the player can make on the next turn."""

    id: str
    label: str
    type: OptionType = OptionType.OPERATIONAL
    estimated_cost_preview: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "type": self.type.value,
            "estimated_cost_preview": self.estimated_cost_preview,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> NextOption:
        return cls(
            id=str(data["id"]),
            label=str(data["label"]),
            type=OptionType(data.get("type", OptionType.OPERATIONAL.value)),
            estimated_cost_preview=str(data.get("estimated_cost_preview", "")),
        )


@dataclass(frozen=True)
class OpsUpdates:
    """Non-monetary changes proposed alongside a turn's journal entries.

    Fields left as None keep the current value; the *_change fields are
    deltas.
    """

    new_week_number: int | None = None
    inventory_mass_change_kg: float = 0.0
    machine_health_change: float = 0.0
    new_machines: tuple[str, ...] = ()
    first_run_customers_change: int = 0
    repeat_customers_change: int = 0
    has_shopify: bool | None = None
    monthly_costs: Decimal | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "new_week_number": self.new_week_number,
            "inventory_mass_change_kg": self.inventory_mass_change_kg,
            "machine_health_change": self.machine_health_change,
            "new_machines": list(self.new_machines),
            "first_run_customers_change": self.first_run_customers_change,
            "repeat_customers_change": self.repeat_customers_change,
            "has_shopify": self.has_shopify,
            "monthly_costs": str(self.monthly_costs) if self.monthly_costs is not None else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> OpsUpdates:
        monthly_costs = data.get("monthly_costs")
        return cls(
            new_week_number=data.get("new_week_number"),
            inventory_mass_change_kg=float(data.get("inventory_mass_change_kg", 0.0)),
            machine_health_change=float(data.get("machine_health_change", 0.0)),
            new_machines=tuple(data.get("new_machines", ())),
            first_run_customers_change=int(data.get("first_run_customers_change", 0)),
            repeat_customers_change=int(data.get("repeat_customers_change", 0)),
            has_shopify=data.get("has_shopify"),
            monthly_costs=to_money(monthly_costs) if monthly_costs is not None else None,
        )


@dataclass(frozen=True)
class TurnOutcome:
    """One accepted turn: the story, the lesson and the books."""

    narrative_outcome: str
    mentor_feedback: str
    journal_entries: tuple[JournalEntry, ...] = ()
    ops_updates: OpsUpdates = field(default_factory=OpsUpdates)
    next_options: tuple[NextOption, ...] = ()
    action: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "narrative_outcome": self.narrative_outcome,
            "mentor_feedback": self.mentor_feedback,
            "journal_entries": [entry.to_dict() for entry in self.journal_entries],
            "ops_updates": self.ops_updates.to_dict(),
            "next_options": [option.to_dict() for option in self.next_options],
            "action": self.action,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TurnOutcome:
        return cls(
            narrative_outcome=str(data.get("narrative_outcome", "")),
            mentor_feedback=str(data.get("mentor_feedback", "")),
            journal_entries=tuple(
                JournalEntry.from_dict(entry) for entry in data.get("journal_entries", [])
            ),
            ops_updates=OpsUpdates.from_dict(data.get("ops_updates") or {}),
            next_options=tuple(
                NextOption.from_dict(option) for option in data.get("next_options", [])
            ),
            action=str(data.get("action", "")),
        )


@dataclass(frozen=True)
class BusinessState:
    """Full state of one simulation session.

    ``cash`` is a projection of the ledger's Cash account and is only ever
    set from ``compute_cash``; nothing assigns it directly.
    """

    cash: Decimal = ZERO
    ledger: Ledger = ()
    week: int = 0
    inventory_kg: float = 0.0
    machines: tuple[Machine, ...] = (Machine(name=STARTER_MACHINE),)
    customers_first_run_queue: int = 0
    active_repeat_customers: int = 0
    has_shopify: bool = False
    monthly_costs: Decimal = ZERO
    turn_history: tuple[TurnOutcome, ...] = ()
    is_loading: bool = False
    game_over: bool = False

    @property
    def last_outcome(self) -> TurnOutcome | None:
        return self.turn_history[-1] if self.turn_history else None

    @property
    def next_options(self) -> tuple[NextOption, ...]:
        """Options offered by the most recent turn."""
        last = self.last_outcome
        return last.next_options if last else ()

    @property
    def has_started(self) -> bool:
        return bool(self.turn_history)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to plain data for persistence.

        ``is_loading`` is always written as False: a saved session must
        never resume mid-turn.
        """
        return {
            "cash": str(self.cash),
            "ledger": [entry.to_dict() for entry in self.ledger],
            "week": self.week,
            "inventory_kg": self.inventory_kg,
            "machines": [machine.to_dict() for machine in self.machines],
            "customers_first_run_queue": self.customers_first_run_queue,
            "active_repeat_customers": self.active_repeat_customers,
            "has_shopify": self.has_shopify,
            "monthly_costs": str(self.monthly_costs),
            "turn_history": [outcome.to_dict() for outcome in self.turn_history],
            "is_loading": False,
            "game_over": self.game_over,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> BusinessState:
        """Merge saved data over the zero state.

        Fields missing from older saves keep their zero value. Cash is
        recomputed from the ledger and ``is_loading`` is forced off.

        Raises:
            ValueError: If a saved value has the wrong type.
        """
        zero = cls()
        ledger: Ledger = tuple(
            JournalEntry.from_dict(entry) for entry in data.get("ledger", [])
        )
        machines = data.get("machines")
        return cls(
            cash=compute_cash(ledger),
            ledger=ledger,
            week=int(data.get("week", zero.week)),
            inventory_kg=float(data.get("inventory_kg", zero.inventory_kg)),
            machines=(
                tuple(Machine.from_dict(m) for m in machines)
                if machines is not None
                else zero.machines
            ),
            customers_first_run_queue=int(
                data.get("customers_first_run_queue", zero.customers_first_run_queue)
            ),
            active_repeat_customers=int(
                data.get("active_repeat_customers", zero.active_repeat_customers)
            ),
            has_shopify=_flag(data, "has_shopify", zero.has_shopify),
            monthly_costs=to_money(data.get("monthly_costs", zero.monthly_costs)),
            turn_history=tuple(
                TurnOutcome.from_dict(outcome) for outcome in data.get("turn_history", [])
            ),
            is_loading=False,
            game_over=_flag(data, "game_over", zero.game_over),
        )


def _flag(data: Mapping[str, Any], key: str, default: bool) -> bool:
    value = data.get(key, default)
    if not isinstance(value, bool):
        raise ValueError(f"{key} must be true or false, got {value!r}")
    return value


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def apply_ops_updates(state: BusinessState, ops: OpsUpdates) -> BusinessState:
    """Fold a turn's operational deltas into the state.

    The week always moves forward: a proposed week number that does not
    advance past the current week is replaced by ``week + 1``. Inventory
    and customer counters never go below zero; machine health stays
    within 0-100.
    """
    if ops.new_week_number is not None and ops.new_week_number > state.week:
        week = ops.new_week_number
    else:
        week = state.week + 1

    machines = tuple(
        dataclasses.replace(
            machine,
            health=_clamp(machine.health + ops.machine_health_change, 0.0, MAX_MACHINE_HEALTH),
        )
        for machine in state.machines
    ) + tuple(Machine(name=name) for name in ops.new_machines)

    return dataclasses.replace(
        state,
        week=week,
        inventory_kg=max(0.0, state.inventory_kg + ops.inventory_mass_change_kg),
        machines=machines,
        customers_first_run_queue=max(
            0, state.customers_first_run_queue + ops.first_run_customers_change
        ),
        active_repeat_customers=max(
            0, state.active_repeat_customers + ops.repeat_customers_change
        ),
        has_shopify=state.has_shopify if ops.has_shopify is None else ops.has_shopify,
        monthly_costs=state.monthly_costs if ops.monthly_costs is None else ops.monthly_costs,
    )
