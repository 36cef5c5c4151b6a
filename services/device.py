"""Device-side runtime: a sensor loop and a control loop on separate timers."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from threading import Event, Lock, Thread
from typing import Any, Callable, Dict, Mapping, Optional, Protocol

from services.actuator import ActuatorStateTracker, PositionChange

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SensorSample:
    ph: float
    soil: float
    temperature: float
    humidity: float

    def to_payload(self) -> Dict[str, Any]:
        return {
            "ph": self.ph,
            "soil": self.soil,
            "temperature": self.temperature,
            "humidity": self.humidity,
        }


class SensorSource(Protocol):
    def read(self) -> SensorSample:
        ...


class Publisher(Protocol):
    def publish(self, topic: str, payload: Mapping[str, Any]) -> bool:
        ...


class LatestReadingCell:
    """Lock-protected slot holding the most recent sensor sample."""

    def __init__(self) -> None:
        self._sample: Optional[SensorSample] = None
        self._lock = Lock()

    def set(self, sample: SensorSample) -> None:
        with self._lock:
            self._sample = sample

    def get(self) -> Optional[SensorSample]:
        with self._lock:
            return self._sample


class PeriodicTask:
    """Run ``func`` every ``period`` seconds on a daemon thread until stopped.

    An exception raised by one tick is logged and the next tick still runs.
    """

    def __init__(self, name: str, period: float, func: Callable[[], None]) -> None:
        if period <= 0:
            raise ValueError("Period must be positive.")
        self.name = name
        self.period = period
        self.func = func
        self._stop = Event()
        self._thread: Optional[Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                self.func()
            except Exception:  # noqa: BLE001 - one failed tick must not end the loop
                logger.exception("Periodic task %s failed", self.name)
            self._stop.wait(self.period)


class DeviceRuntime:
    """Wires a sensor source, the actuator tracker and a publisher together.

    The sensor loop owns the latest-sample cell; the control loop only reads
    it and is the sole caller of the tracker.
    """

    def __init__(
        self,
        source: SensorSource,
        tracker: ActuatorStateTracker,
        publisher: Publisher,
        sensor_topic: str,
        servo_topic: str,
        sensor_period: float = 2.0,
        control_period: float = 5.0,
    ) -> None:
        self.source = source
        self.tracker = tracker
        self.publisher = publisher
        self.sensor_topic = sensor_topic
        self.servo_topic = servo_topic
        self.latest = LatestReadingCell()
        self._sensor_task = PeriodicTask("sensor-loop", sensor_period, self.sensor_tick)
        self._control_task = PeriodicTask("control-loop", control_period, self.control_tick)

    def sensor_tick(self) -> SensorSample:
        sample = self.source.read()
        self.latest.set(sample)
        payload = sample.to_payload()
        payload["servo_position"] = self.tracker.current_position
        self.publisher.publish(self.sensor_topic, payload)
        return sample

    def control_tick(self) -> Optional[PositionChange]:
        sample = self.latest.get()
        if sample is None:
            return None
        change = self.tracker.evaluate(sample.ph, sample.soil)
        if change is not None:
            self.publisher.publish(
                self.servo_topic,
                {
                    "servo_position": change.position,
                    "previous_position": change.previous_position,
                    "ph": sample.ph,
                    "soil": sample.soil,
                },
            )
        return change

    def start(self) -> None:
        self._sensor_task.start()
        self._control_task.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._sensor_task.stop(timeout)
        self._control_task.stop(timeout)


class SimulatedSensorSource:
    """Random-walk sensor values clamped to plausible field ranges."""

    def __init__(self, seed: Optional[int] = None) -> None:
        self._random = random.Random(seed)
        self._ph = 5.0
        self._soil = 55.0
        self._temperature = 26.0
        self._humidity = 60.0

    def read(self) -> SensorSample:
        self._ph = _clamp(self._ph + self._random.uniform(-0.2, 0.2), 3.5, 7.0)
        self._soil = _clamp(self._soil + self._random.uniform(-4.0, 4.0), 0.0, 100.0)
        self._temperature = _clamp(self._temperature + self._random.uniform(-0.5, 0.5), 10.0, 40.0)
        self._humidity = _clamp(self._humidity + self._random.uniform(-2.0, 2.0), 0.0, 100.0)
        return SensorSample(
            ph=round(self._ph, 2),
            soil=round(self._soil, 1),
            temperature=round(self._temperature, 1),
            humidity=round(self._humidity, 1),
        )


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))