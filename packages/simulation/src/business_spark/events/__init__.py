"""Turn lifecycle events and the publisher that fans them out."""

from business_spark.events.publisher import EventPublisher
from business_spark.events.types import (
    EventType,
    SimulationEvent,
    TurnEvent,
    game_loaded,
    game_over,
    game_reset,
    turn_cancelled,
    turn_completed,
    turn_failed,
    turn_stale_dropped,
    turn_started,
)

__all__ = [
    "EventPublisher",
    "EventType",
    "SimulationEvent",
    "TurnEvent",
    "turn_started",
    "turn_completed",
    "turn_failed",
    "turn_cancelled",
    "turn_stale_dropped",
    "game_over",
    "game_reset",
    "game_loaded",
]
