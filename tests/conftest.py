"""Shared test helpers for pcmon."""

import threading
import time

import pytest

from pcmon.adapters import MetricAdapter
from pcmon.aggregator import SnapshotAggregator
from pcmon.errors import SourceUnavailable
from pcmon.models import DiskRates, GpuReading, Hardware, HardwareType, Sensor, SensorType, Snapshot

MB = 1024 * 1024

CORE_TEMPS = (
    Sensor(SensorType.TEMPERATURE, "Core 0", 48.0),
    Sensor(SensorType.TEMPERATURE, "Core 1", 51.0),
    Sensor(SensorType.TEMPERATURE, "Package id 0", 61.0),
)


class StaticAdapter(MetricAdapter):
    """Adapter that always returns the same value."""

    def __init__(self, value, family: str = "static") -> None:
        super().__init__()
        self.family = family
        self.value = value
        self.calls = 0

    def _read(self):
        self.calls += 1
        return self.value


class FailingAdapter(MetricAdapter):
    """Adapter whose source always fails."""

    def __init__(self, family: str = "failing") -> None:
        super().__init__()
        self.family = family
        self.calls = 0

    def _read(self):
        self.calls += 1
        raise SourceUnavailable("no such device")


class FakeSource:
    """HardwareSource returning fixed devices."""

    def __init__(
        self,
        name: str,
        devices: list[Hardware] | None = None,
        fail_open: bool = False,
        provides: tuple[HardwareType, ...] = tuple(HardwareType),
    ) -> None:
        self.name = name
        self.provides = provides
        self.devices = devices or []
        self.fail_open = fail_open
        self.open_calls = 0
        self.read_calls = 0
        self.close_calls = 0

    def open(self) -> None:
        self.open_calls += 1
        if self.fail_open:
            raise RuntimeError(f"{self.name} driver missing")

    def read(self) -> list[Hardware]:
        self.read_calls += 1
        return list(self.devices)

    def close(self) -> None:
        self.close_calls += 1


class RecordingSink:
    """SnapshotSink that records everything it receives."""

    def __init__(self) -> None:
        self.snapshots: list[Snapshot] = []
        self.close_reasons: list[str] = []
        self._cond = threading.Condition()

    def push(self, snapshot: Snapshot) -> None:
        with self._cond:
            self.snapshots.append(snapshot)
            self._cond.notify_all()

    def close(self, reason: str) -> None:
        with self._cond:
            self.close_reasons.append(reason)
            self._cond.notify_all()

    def wait_for(self, count: int, timeout: float = 5.0) -> bool:
        """Wait until at least count snapshots have arrived."""
        with self._cond:
            return self._cond.wait_for(lambda: len(self.snapshots) >= count, timeout=timeout)

    def wait_closed(self, timeout: float = 5.0) -> bool:
        """Wait until close() has been called."""
        with self._cond:
            return self._cond.wait_for(lambda: bool(self.close_reasons), timeout=timeout)


class CountingAggregator:
    """Aggregator stand-in that numbers its snapshots and records timing."""

    def __init__(self, duration: float = 0.0) -> None:
        self.duration = duration
        self.started_at: list[float] = []
        self.close_calls = 0
        self.collected_after_close = False

    def collect(self) -> Snapshot:
        if self.close_calls:
            self.collected_after_close = True
        self.started_at.append(time.monotonic())
        if self.duration:
            time.sleep(self.duration)
        return make_snapshot(cpu_usage_percent=float(len(self.started_at)))

    def close(self) -> None:
        self.close_calls += 1


def make_snapshot(**overrides) -> Snapshot:
    """Build a Snapshot with sensible defaults."""
    values = {
        "cpu_usage_percent": 10.0,
        "available_memory_bytes": 4096 * MB,
        "total_memory_bytes": 8192 * MB,
        "disk_read_bytes_per_sec": 0.0,
        "disk_write_bytes_per_sec": 0.0,
        "disk_read_mb_per_sec": 0.0,
        "disk_write_mb_per_sec": 0.0,
        "cpu_temperature_celsius": 50.0,
        "gpu_temperature_celsius": 60.0,
        "gpu_usage_percent": 20.0,
    }
    values.update(overrides)
    return Snapshot(**values)


def make_aggregator(**overrides) -> SnapshotAggregator:
    """Build an aggregator over static adapters matching the reference scenario."""
    adapters = {
        "cpu": StaticAdapter(42.5, "cpu"),
        "memory": StaticAdapter(2048 * MB, "memory"),
        "disk": StaticAdapter(DiskRates.from_bytes(1048576, 0), "disk"),
        "cpu_temperature": FailingAdapter("cpu_temperature"),
        "gpu": StaticAdapter(GpuReading(temperature_celsius=65.0, usage_percent=30.0), "gpu"),
        "total_memory_bytes": 8192 * MB,
    }
    adapters.update(overrides)
    return SnapshotAggregator(**adapters)


@pytest.fixture
def sink() -> RecordingSink:
    """A fresh RecordingSink."""
    return RecordingSink()


@pytest.fixture
def aggregator() -> SnapshotAggregator:
    """Aggregator over static adapters."""
    return make_aggregator()
