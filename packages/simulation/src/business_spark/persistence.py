"""Saving and loading the serializable part of a game session."""

import json
import os
import tempfile
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Protocol

import structlog

from business_spark.config import get_settings
from business_spark.errors import BusinessSparkError
from business_spark.state import BusinessState

logger = structlog.get_logger(__name__)


class PersistenceError(BusinessSparkError):
    """Saved state could not be read."""

    pass


class StateStore(Protocol):
    """Storage backend for a single game session."""

    def load(self) -> Mapping[str, Any] | None: ...

    def save(self, state: BusinessState) -> None: ...


class MemoryStateStore:
    """Keeps the last saved state in memory."""

    def __init__(self, initial: Mapping[str, Any] | None = None):
        self._data: dict[str, Any] | None = dict(initial) if initial is not None else None
        self.save_count = 0

    def load(self) -> Mapping[str, Any] | None:
        return self._data

    def save(self, state: BusinessState) -> None:
        self._data = state.to_dict()
        self.save_count += 1


class JsonFileStateStore:
    """Stores the game as a JSON document on disk.

    Writes go to a temporary file in the same directory and are then
    renamed over the target, so a crash mid-write leaves the previous save
    intact.
    """

    def __init__(self, path: Path | str | None = None):
        self._path = Path(path) if path is not None else get_settings().state_file
        self._logger = logger.bind(component="state_store", path=str(self._path))

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> Mapping[str, Any] | None:
        """Read the saved game, or None if nothing has been saved yet.

        Raises:
            PersistenceError: If the file exists but is not a JSON object.
        """
        if not self._path.exists():
            return None

        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceError(f"Could not read saved game: {e}") from e

        if not isinstance(data, dict):
            raise PersistenceError("Saved game is not a JSON object")

        self._logger.info("state_loaded", week=data.get("week"))
        return data

    def save(self, state: BusinessState) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(state.to_dict(), indent=2)

        fd, tmp_name = tempfile.mkstemp(
            dir=self._path.parent, prefix=f".{self._path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        self._logger.debug("state_saved", week=state.week, entries=len(state.ledger))

    def clear(self) -> None:
        """Delete the saved game."""
        self._path.unlink(missing_ok=True)
