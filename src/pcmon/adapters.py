"""
Metric source adapters for pcmon.

Each adapter wraps one metric source and turns its output into a value, or
into UNAVAILABLE when the source cannot be read. Adapters never raise to
their caller.
"""

import logging
import time
from collections.abc import Callable

import psutil

from pcmon.errors import SourceUnavailable
from pcmon.models import (
    CPU,
    CPU_TEMPERATURE,
    DISK,
    GPU,
    MEMORY,
    MEMORY_SENTINEL_TOTAL,
    UNAVAILABLE,
    DiskRates,
    GpuReading,
    HardwareType,
    MetricResult,
    SensorType,
    clamp_percent,
)
from pcmon.sensors import (
    CPU_TEMPERATURE_LABELS,
    DEFAULT_CPU_TEMPERATURE_LABELS,
    GPU_LOAD_LABELS,
    GPU_TEMPERATURE_LABELS,
    HardwareMonitor,
    labels_for,
    select_sensor,
)

logger = logging.getLogger(__name__)


class MetricAdapter:
    """
    Base class for adapters.

    Subclasses implement _setup() for lazy one-time initialization and
    _read() for the actual query. The sample that runs setup returns
    _initial() instead of reading, so rate adapters never report a value
    measured over an empty window. Any exception is converted to UNAVAILABLE
    by sample(). A failed setup is retried on the next sample.
    """

    family: str = ""

    def __init__(self) -> None:
        self._ready = False

    def sample(self) -> MetricResult:
        """Query the source once."""
        try:
            if not self._ready:
                self._setup()
                self._ready = True
                return self._initial()
            return self._read()
        except Exception as exc:
            logger.debug("%s source unavailable: %s", self.family, exc)
            return UNAVAILABLE

    def _setup(self) -> None:
        pass

    def _initial(self) -> MetricResult:
        return self._read()

    def _read(self) -> MetricResult:
        raise NotImplementedError


class CpuLoadAdapter(MetricAdapter):
    """Machine-wide CPU usage percent since the previous sample."""

    family = CPU

    def _setup(self) -> None:
        # First call returns 0.0 and primes the counter
        psutil.cpu_percent(interval=None)

    def _initial(self) -> float:
        return 0.0

    def _read(self) -> float:
        return clamp_percent(float(psutil.cpu_percent(interval=None)))


class MemoryAdapter(MetricAdapter):
    """Available physical memory in bytes."""

    family = MEMORY

    def _read(self) -> int:
        return max(int(psutil.virtual_memory().available), 0)


def probe_total_memory(reader: Callable[[], int] | None = None) -> tuple[int, bool]:
    """
    Read total physical memory once.

    Returns:
        (total_bytes, degraded). When the total cannot be read or is zero the
        sentinel 1 is returned with degraded set, so percentages never divide
        by zero.
    """
    try:
        total = int(reader()) if reader is not None else int(psutil.virtual_memory().total)
    except Exception as exc:
        logger.warning("Could not determine total memory: %s", exc)
        return MEMORY_SENTINEL_TOTAL, True
    if total <= 0:
        logger.warning("Total memory reported as %d; using sentinel", total)
        return MEMORY_SENTINEL_TOTAL, True
    return total, False


class DiskThroughputAdapter(MetricAdapter):
    """Disk read/write rates computed from cumulative psutil counters."""

    family = DISK

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        super().__init__()
        self._clock = clock
        self._prev_ts = 0.0
        self._prev_read = 0
        self._prev_write = 0

    def _counters(self) -> tuple[int, int]:
        counters = psutil.disk_io_counters()
        if counters is None:
            raise SourceUnavailable("no disk counters")
        return counters.read_bytes, counters.write_bytes

    def _setup(self) -> None:
        self._prev_read, self._prev_write = self._counters()
        self._prev_ts = self._clock()

    def _initial(self) -> DiskRates:
        return DiskRates.from_bytes(0.0, 0.0)

    def _read(self) -> DiskRates:
        read_bytes, write_bytes = self._counters()
        now = self._clock()
        elapsed = now - self._prev_ts
        # Counter resets show up as negative deltas
        read_delta = max(read_bytes - self._prev_read, 0)
        write_delta = max(write_bytes - self._prev_write, 0)
        self._prev_ts, self._prev_read, self._prev_write = now, read_bytes, write_bytes
        if elapsed <= 0:
            return DiskRates.from_bytes(0.0, 0.0)
        return DiskRates.from_bytes(read_delta / elapsed, write_delta / elapsed)


class CpuTemperatureAdapter(MetricAdapter):
    """CPU temperature in Celsius from the hardware monitor."""

    family = CPU_TEMPERATURE

    def __init__(self, monitor: HardwareMonitor) -> None:
        super().__init__()
        self._monitor = monitor

    def _read(self) -> MetricResult:
        for device in self._monitor.hardware(HardwareType.CPU):
            labels = labels_for(device, CPU_TEMPERATURE_LABELS, DEFAULT_CPU_TEMPERATURE_LABELS)
            sensor = select_sensor(device.sensors, SensorType.TEMPERATURE, labels)
            if sensor is not None:
                return sensor.value
        return UNAVAILABLE


class GpuAdapter(MetricAdapter):
    """Temperature and core load of the first NVIDIA GPU."""

    family = GPU

    def __init__(self, monitor: HardwareMonitor) -> None:
        super().__init__()
        self._monitor = monitor

    def _read(self) -> MetricResult:
        gpus = self._monitor.hardware(HardwareType.GPU_NVIDIA)
        if not gpus:
            return UNAVAILABLE
        gpu = gpus[0]
        temperature = select_sensor(gpu.sensors, SensorType.TEMPERATURE, GPU_TEMPERATURE_LABELS)
        load = select_sensor(gpu.sensors, SensorType.LOAD, GPU_LOAD_LABELS)
        if temperature is None and load is None:
            return UNAVAILABLE
        return GpuReading(
            temperature_celsius=temperature.value if temperature else None,
            usage_percent=clamp_percent(load.value) if load else None,
        )
