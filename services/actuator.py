"""Valve position state with a deadband before re-commanding."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from threading import Lock
from typing import Callable, List, Optional, Protocol

from datastore.base import ReadingStore
from models.records import Reading, Stream
from services.policy import POSITION_CLOSED, decide

logger = logging.getLogger(__name__)

DEFAULT_DEADBAND = 10


class Actuator(Protocol):
    def move_to(self, position: int) -> None:
        ...


@dataclass
class ActuatorState:
    current_position: int = POSITION_CLOSED
    last_evaluated_at: Optional[datetime] = None


@dataclass(frozen=True)
class PositionChange:
    previous_position: int
    position: int
    changed_at: datetime


PositionListener = Callable[[PositionChange], None]
Policy = Callable[[float, float], int]


class ActuatorStateTracker:
    """Single writer of the commanded valve position.

    A new target is only committed when it differs from the current position
    by more than ``deadband`` degrees; smaller moves are ignored so readings
    hovering near a rule boundary do not make the valve chatter.
    """

    def __init__(
        self,
        actuator: Optional[Actuator] = None,
        policy: Policy = decide,
        deadband: int = DEFAULT_DEADBAND,
    ) -> None:
        if deadband < 0:
            raise ValueError("Deadband must not be negative.")
        self.actuator = actuator
        self.policy = policy
        self.deadband = deadband
        self._state = ActuatorState()
        self._listeners: List[PositionListener] = []
        self._lock = Lock()

    @property
    def current_position(self) -> int:
        with self._lock:
            return self._state.current_position

    def snapshot(self) -> ActuatorState:
        with self._lock:
            return replace(self._state)

    def add_listener(self, listener: PositionListener) -> None:
        self._listeners.append(listener)

    def evaluate(
        self, ph: float, soil: float, now: Optional[datetime] = None
    ) -> Optional[PositionChange]:
        return self.apply_target(self.policy(ph, soil), now=now)

    def apply_target(
        self, target: int, now: Optional[datetime] = None
    ) -> Optional[PositionChange]:
        timestamp = now or datetime.now(timezone.utc)
        with self._lock:
            self._state.last_evaluated_at = timestamp
            previous = self._state.current_position
            if abs(target - previous) <= self.deadband:
                return None
            self._state.current_position = target

        change = PositionChange(
            previous_position=previous, position=target, changed_at=timestamp
        )
        if self.actuator is not None:
            self.actuator.move_to(target)
        logger.info(
            "Valve moved to %s degrees",
            target,
            extra={"position": target, "previous_position": previous},
        )
        for listener in list(self._listeners):
            listener(change)
        return change


def record_position_changes(store: ReadingStore) -> PositionListener:
    """Listener that appends each position change to the servo stream."""

    def _record(change: PositionChange) -> None:
        store.append(
            Stream.servo,
            Reading(
                received_at=change.changed_at,
                servo_position=change.position,
                topic=Stream.servo.value,
            ),
        )

    return _record


class LoggingActuator:
    """Stand-in actuator that only logs commanded positions."""

    def __init__(self) -> None:
        self.position: Optional[int] = None

    def move_to(self, position: int) -> None:
        self.position = position
        logger.info("Commanding valve", extra={"position": position})
