"""Event type definitions for turn lifecycle publishing.

These events are published to hooks and connected frontend clients so a
dashboard can follow the simulation as turns are processed.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import UUID, uuid4


class EventType(str, Enum):
    """Types of events published by the turn engine."""

    # Turn lifecycle
    TURN_STARTED = "turn.started"
    TURN_COMPLETED = "turn.completed"
    TURN_FAILED = "turn.failed"
    TURN_CANCELLED = "turn.cancelled"
    TURN_STALE_DROPPED = "turn.stale_dropped"

    # Game lifecycle
    GAME_OVER = "game.over"
    GAME_RESET = "game.reset"
    GAME_LOADED = "game.loaded"


@dataclass
class SimulationEvent:
    """Base event structure for all simulation events."""

    event_type: EventType
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    event_id: UUID = field(default_factory=uuid4)
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Serialize event to dictionary for JSON transmission."""
        return {
            "id": str(self.event_id),
            "type": self.event_type.value,
            "timestamp": self.timestamp.isoformat(),
            "data": self.data,
        }


@dataclass
class TurnEvent(SimulationEvent):
    """Event for a single turn submission."""

    turn_token: int = 0
    week: int = 0
    action: str = ""
    cash: str = "0.00"
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base["turn"] = {
            "token": self.turn_token,
            "week": self.week,
            "action": self.action,
            "cash": self.cash,
            "error": self.error,
        }
        return base


# Factory functions for creating events


def turn_started(turn_token: int, week: int, action: str) -> TurnEvent:
    """Create a turn started event."""
    return TurnEvent(
        event_type=EventType.TURN_STARTED,
        turn_token=turn_token,
        week=week,
        action=action[:200],
    )


def turn_completed(
    turn_token: int,
    week: int,
    action: str,
    cash: str,
    entry_count: int,
    narrative: str = "",
) -> TurnEvent:
    """Create a turn completed event."""
    return TurnEvent(
        event_type=EventType.TURN_COMPLETED,
        turn_token=turn_token,
        week=week,
        action=action[:200],
        cash=cash,
        data={"entry_count": entry_count, "narrative_preview": narrative[:500]},
    )


def turn_failed(turn_token: int, week: int, action: str, error: str, kind: str) -> TurnEvent:
    """Create a turn failed event."""
    return TurnEvent(
        event_type=EventType.TURN_FAILED,
        turn_token=turn_token,
        week=week,
        action=action[:200],
        error=error,
        data={"kind": kind},
    )


def turn_cancelled(turn_token: int, week: int) -> TurnEvent:
    """Create a turn cancelled event."""
    return TurnEvent(event_type=EventType.TURN_CANCELLED, turn_token=turn_token, week=week)


def turn_stale_dropped(turn_token: int, current_token: int) -> TurnEvent:
    """Create an event for a generator response that arrived too late."""
    return TurnEvent(
        event_type=EventType.TURN_STALE_DROPPED,
        turn_token=turn_token,
        data={"current_token": current_token},
    )


def game_over(week: int, cash: str) -> SimulationEvent:
    """Create a bankruptcy event."""
    return SimulationEvent(event_type=EventType.GAME_OVER, data={"week": week, "cash": cash})


def game_reset() -> SimulationEvent:
    """Create a game reset event."""
    return SimulationEvent(event_type=EventType.GAME_RESET)


def game_loaded(week: int, turns: int) -> SimulationEvent:
    """Create a game loaded event."""
    return SimulationEvent(event_type=EventType.GAME_LOADED, data={"week": week, "turns": turns})
