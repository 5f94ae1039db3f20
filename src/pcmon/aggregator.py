"""Snapshot aggregation for pcmon."""

import logging
from datetime import datetime, timezone

from pcmon.adapters import (
    CpuLoadAdapter,
    CpuTemperatureAdapter,
    DiskThroughputAdapter,
    GpuAdapter,
    MemoryAdapter,
    MetricAdapter,
    probe_total_memory,
)
from pcmon.models import (
    CPU,
    CPU_TEMPERATURE,
    DISK,
    GPU,
    MEMORY,
    UNAVAILABLE,
    DiskRates,
    GpuReading,
    MetricResult,
    Snapshot,
)
from pcmon.sensors import HardwareMonitor

logger = logging.getLogger(__name__)


class SnapshotAggregator:
    """
    Queries every adapter once per cycle and builds a Snapshot.

    A failing adapter only degrades its own fields. The aggregator owns the
    shared HardwareMonitor and closes it in close().
    """

    def __init__(
        self,
        cpu: MetricAdapter,
        memory: MetricAdapter,
        disk: MetricAdapter,
        cpu_temperature: MetricAdapter,
        gpu: MetricAdapter,
        total_memory_bytes: int,
        total_memory_degraded: bool = False,
        hardware_monitor: HardwareMonitor | None = None,
    ) -> None:
        """
        Initialize the SnapshotAggregator.

        Args:
            cpu: Adapter returning CPU usage percent.
            memory: Adapter returning available memory in bytes.
            disk: Adapter returning DiskRates.
            cpu_temperature: Adapter returning CPU temperature in Celsius.
            gpu: Adapter returning a GpuReading.
            total_memory_bytes: Total memory, read once at startup.
            total_memory_degraded: True when total_memory_bytes is a sentinel.
            hardware_monitor: Shared sensor handle closed by close().
        """
        self._adapters: dict[str, MetricAdapter] = {
            CPU: cpu,
            MEMORY: memory,
            DISK: disk,
            CPU_TEMPERATURE: cpu_temperature,
            GPU: gpu,
        }
        self._total_memory = total_memory_bytes
        self._total_memory_degraded = total_memory_degraded
        self._hardware_monitor = hardware_monitor

    @classmethod
    def create(cls, hardware_monitor: HardwareMonitor | None = None) -> "SnapshotAggregator":
        """Build an aggregator wired to psutil and the hardware monitor."""
        monitor = hardware_monitor or HardwareMonitor()
        total, degraded = probe_total_memory()
        return cls(
            cpu=CpuLoadAdapter(),
            memory=MemoryAdapter(),
            disk=DiskThroughputAdapter(),
            cpu_temperature=CpuTemperatureAdapter(monitor),
            gpu=GpuAdapter(monitor),
            total_memory_bytes=total,
            total_memory_degraded=degraded,
            hardware_monitor=monitor,
        )

    @property
    def total_memory_bytes(self) -> int:
        """Total memory captured at startup."""
        return self._total_memory

    def _sample_all(self) -> dict[str, MetricResult]:
        results: dict[str, MetricResult] = {}
        for family, adapter in self._adapters.items():
            try:
                results[family] = adapter.sample()
            except Exception:
                # Adapters should not raise; contain it to this family anyway
                logger.exception("Adapter %s raised", family)
                results[family] = UNAVAILABLE
        return results

    def collect(self) -> Snapshot:
        """Run one cycle and return the Snapshot."""
        results = self._sample_all()
        degraded: set[str] = set()

        cpu = results[CPU]
        if cpu is UNAVAILABLE:
            degraded.add(CPU)
            cpu = 0.0

        available = results[MEMORY]
        if available is UNAVAILABLE:
            degraded.add(MEMORY)
            available = 0
        if self._total_memory_degraded:
            degraded.add(MEMORY)

        disk = results[DISK]
        if not isinstance(disk, DiskRates):
            degraded.add(DISK)
            disk = DiskRates.from_bytes(0.0, 0.0)

        cpu_temp = results[CPU_TEMPERATURE]
        if cpu_temp is UNAVAILABLE:
            degraded.add(CPU_TEMPERATURE)
            cpu_temp = None

        gpu = results[GPU]
        if not isinstance(gpu, GpuReading):
            degraded.add(GPU)
            gpu = GpuReading(temperature_celsius=None, usage_percent=None)

        return Snapshot(
            cpu_usage_percent=float(cpu),
            available_memory_bytes=int(available),
            total_memory_bytes=self._total_memory,
            disk_read_bytes_per_sec=disk.read_bytes_per_sec,
            disk_write_bytes_per_sec=disk.write_bytes_per_sec,
            disk_read_mb_per_sec=disk.read_mb_per_sec,
            disk_write_mb_per_sec=disk.write_mb_per_sec,
            cpu_temperature_celsius=cpu_temp,
            gpu_temperature_celsius=gpu.temperature_celsius,
            gpu_usage_percent=gpu.usage_percent if gpu.usage_percent is not None else 0.0,
            degraded=frozenset(degraded),
            timestamp=datetime.now(timezone.utc),
        )

    def close(self) -> None:
        """Release the shared hardware monitor."""
        if self._hardware_monitor is not None:
            self._hardware_monitor.close()
