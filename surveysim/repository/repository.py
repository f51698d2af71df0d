"""Mission repository collaborator.

The simulator never persists anything itself: it looks missions up by id
and reports how each simulation ended.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
import json
import logging
from pathlib import Path
import threading
from typing import Protocol, runtime_checkable

from surveysim.exceptions import ConfigurationError, MissionNotFoundError
from surveysim.mission import MissionDescriptor

logger = logging.getLogger(__name__)


class OutcomeStatus(Enum):
    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclass(frozen=True)
class MissionOutcome:
    """Terminal result of one simulation run."""

    status: OutcomeStatus
    reason: str
    progress: float
    battery: float
    distance_flown: float
    finished_at: datetime


@runtime_checkable
class MissionRepository(Protocol):
    def get_mission(self, mission_id: str) -> MissionDescriptor:
        """Return the mission's descriptor.

        Raises:
            MissionNotFoundError: If no mission has this id.
        """
        ...

    def record_outcome(self, mission_id: str, outcome: MissionOutcome) -> None: ...


class InMemoryMissionRepository:
    """Thread-safe dictionary-backed repository."""

    def __init__(self, missions: Iterable[MissionDescriptor] = ()):
        self._lock = threading.Lock()
        self._missions: dict[str, MissionDescriptor] = {}
        self._outcomes: dict[str, list[MissionOutcome]] = {}
        for mission in missions:
            self.add(mission)

    @classmethod
    def from_file(cls, path: str | Path) -> "InMemoryMissionRepository":
        """Load missions from a JSON file of the form ``{"missions": [...]}``.

        Raises:
            ConfigurationError: If the file is not valid JSON or a record is invalid.
        """
        try:
            document = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            msg = f"Cannot read missions from {path}: {e}"
            raise ConfigurationError(msg) from e

        records = document.get("missions", []) if isinstance(document, dict) else document
        repository = cls(MissionDescriptor.from_record(record) for record in records)
        logger.info("Loaded %d missions from %s", len(repository), path)
        return repository

    def __len__(self) -> int:
        with self._lock:
            return len(self._missions)

    def add(self, mission: MissionDescriptor) -> None:
        with self._lock:
            self._missions[mission.mission_id] = mission

    def get_mission(self, mission_id: str) -> MissionDescriptor:
        with self._lock:
            try:
                return self._missions[mission_id]
            except KeyError:
                raise MissionNotFoundError(mission_id) from None

    def record_outcome(self, mission_id: str, outcome: MissionOutcome) -> None:
        with self._lock:
            self._outcomes.setdefault(mission_id, []).append(outcome)
        logger.info(
            "Mission %s %s (%s) at %.1f%%",
            mission_id,
            outcome.status.value,
            outcome.reason,
            outcome.progress,
        )

    def outcomes(self, mission_id: str) -> list[MissionOutcome]:
        with self._lock:
            return list(self._outcomes.get(mission_id, []))
