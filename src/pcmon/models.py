"""Data models for pcmon."""

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Protocol, TypeVar, Union

from pcmon.errors import ConfigurationOutOfRange

T = TypeVar("T")

MIN_INTERVAL = 1
MAX_INTERVAL = 60
DEFAULT_INTERVAL = 1

MEMORY_SENTINEL_TOTAL = 1

# Metric family names, as reported in Snapshot.degraded
CPU = "cpu"
MEMORY = "memory"
DISK = "disk"
CPU_TEMPERATURE = "cpu_temperature"
GPU = "gpu"
FAMILIES = (CPU, MEMORY, DISK, CPU_TEMPERATURE, GPU)


class Unavailable(Enum):
    """Marker returned by an adapter whose source could not be read."""

    UNAVAILABLE = "unavailable"

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "UNAVAILABLE"


UNAVAILABLE = Unavailable.UNAVAILABLE

MetricResult = Union[T, Unavailable]


def bytes_to_mb(value: float) -> float:
    """Convert bytes to megabytes (1024 * 1024)."""
    return value / 1024 / 1024


def clamp_percent(value: float) -> float:
    """Clamp a percentage into [0, 100]."""
    return min(max(value, 0.0), 100.0)


class HardwareType(Enum):
    """Kinds of devices exposed by the hardware monitor."""

    CPU = "cpu"
    GPU_NVIDIA = "gpu_nvidia"
    OTHER = "other"


class SensorType(Enum):
    """Kinds of sensor readings."""

    TEMPERATURE = "temperature"
    LOAD = "load"


@dataclass(slots=True, frozen=True)
class Sensor:
    """A single named reading on a hardware device."""

    sensor_type: SensorType
    name: str
    value: float | None  # Celsius for temperatures, percent for loads


@dataclass(slots=True, frozen=True)
class Hardware:
    """A device and the sensors it exposes."""

    hardware_type: HardwareType
    name: str
    sensors: tuple[Sensor, ...] = ()


@dataclass(slots=True, frozen=True)
class DiskRates:
    """Disk throughput for one sampling period."""

    read_bytes_per_sec: float
    write_bytes_per_sec: float
    read_mb_per_sec: float
    write_mb_per_sec: float

    @classmethod
    def from_bytes(cls, read_bytes_per_sec: float, write_bytes_per_sec: float) -> "DiskRates":
        """Build DiskRates from byte rates, converting to MB/s."""
        read = max(read_bytes_per_sec, 0.0)
        write = max(write_bytes_per_sec, 0.0)
        return cls(
            read_bytes_per_sec=read,
            write_bytes_per_sec=write,
            read_mb_per_sec=bytes_to_mb(read),
            write_mb_per_sec=bytes_to_mb(write),
        )


@dataclass(slots=True, frozen=True)
class GpuReading:
    """GPU temperature and utilization read together from one device."""

    temperature_celsius: float | None
    usage_percent: float | None


@dataclass(slots=True, frozen=True)
class Snapshot:
    """Immutable set of all metric values as of one sampling cycle."""

    cpu_usage_percent: float
    available_memory_bytes: int
    total_memory_bytes: int
    disk_read_bytes_per_sec: float
    disk_write_bytes_per_sec: float
    disk_read_mb_per_sec: float
    disk_write_mb_per_sec: float
    cpu_temperature_celsius: float | None
    gpu_temperature_celsius: float | None
    gpu_usage_percent: float
    degraded: frozenset[str] = frozenset()
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:
        if self.total_memory_bytes <= 0:
            raise ValueError("total_memory_bytes must be positive")

    @property
    def memory_degraded(self) -> bool:
        """True when memory figures could not be read this cycle."""
        return MEMORY in self.degraded

    @property
    def memory_used_percent_raw(self) -> float:
        """Used memory percentage, unclamped. 0.0 when memory is degraded."""
        if self.memory_degraded:
            return 0.0
        used = self.total_memory_bytes - self.available_memory_bytes
        return used / self.total_memory_bytes * 100

    @property
    def memory_used_percent(self) -> float:
        """Used memory percentage clamped to [0, 100] for display."""
        return clamp_percent(self.memory_used_percent_raw)

    @property
    def memory_anomaly(self) -> bool:
        """True when the raw memory percentage fell outside [0, 100]."""
        raw = self.memory_used_percent_raw
        return raw < 0.0 or raw > 100.0

    def is_degraded(self, family: str) -> bool:
        """Check whether a metric family was unavailable this cycle."""
        return family in self.degraded


class SnapshotSink(Protocol):
    """Receiver of snapshots produced by the scheduler."""

    def push(self, snapshot: Snapshot) -> None:
        """Deliver one snapshot. Must return quickly."""

    def close(self, reason: str) -> None:
        """Signal that no further snapshots will be delivered."""


def validate_interval(seconds: object) -> int:
    """
    Validate a sampling interval.

    Raises:
        ConfigurationOutOfRange: If seconds is not an int in [1, 60].
    """
    if isinstance(seconds, bool) or not isinstance(seconds, int):
        raise ConfigurationOutOfRange(seconds, MIN_INTERVAL, MAX_INTERVAL)
    if not MIN_INTERVAL <= seconds <= MAX_INTERVAL:
        raise ConfigurationOutOfRange(seconds, MIN_INTERVAL, MAX_INTERVAL)
    return seconds


class SamplingConfig:
    """Current sampling interval, changed only through set_interval."""

    __slots__ = ("_interval", "_lock")

    def __init__(self, interval: int = DEFAULT_INTERVAL) -> None:
        self._interval = validate_interval(interval)
        self._lock = threading.Lock()

    @property
    def interval(self) -> int:
        """Current interval in seconds."""
        return self._interval

    def set_interval(self, seconds: int) -> int:
        """
        Replace the interval and return the previous one.

        The previous interval stays in effect if validation fails.
        """
        value = validate_interval(seconds)
        with self._lock:
            previous = self._interval
            self._interval = value
        return previous
