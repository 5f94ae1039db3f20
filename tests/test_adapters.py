"""Tests for metric source adapters."""

from collections import namedtuple

import pytest

from conftest import CORE_TEMPS, FakeSource
from pcmon import adapters
from pcmon.adapters import (
    CpuLoadAdapter,
    CpuTemperatureAdapter,
    DiskThroughputAdapter,
    GpuAdapter,
    MemoryAdapter,
    probe_total_memory,
)
from pcmon.models import UNAVAILABLE, DiskRates, GpuReading, Hardware, HardwareType, Sensor, SensorType
from pcmon.sensors import HardwareMonitor

sdiskio = namedtuple("sdiskio", ["read_bytes", "write_bytes"])
svmem = namedtuple("svmem", ["total", "available"])


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def test_cpu_load_adapter(monkeypatch):
    """Test CPU load is primed once, starts at zero, and is clamped."""
    calls = []

    def fake_cpu_percent(interval=None):
        calls.append(interval)
        return 142.0 if len(calls) > 1 else 0.0

    monkeypatch.setattr(adapters.psutil, "cpu_percent", fake_cpu_percent)
    adapter = CpuLoadAdapter()

    assert adapter.sample() == 0.0
    assert calls == [None]

    assert adapter.sample() == 100.0
    assert calls == [None, None]


def test_memory_adapter(monkeypatch):
    """Test available memory is read in bytes."""
    monkeypatch.setattr(adapters.psutil, "virtual_memory", lambda: svmem(8 * 1024**3, 2 * 1024**3))
    assert MemoryAdapter().sample() == 2 * 1024**3


def test_adapter_fault_becomes_unavailable(monkeypatch):
    """Test any provider exception is converted to UNAVAILABLE."""

    def denied():
        raise PermissionError("denied")

    monkeypatch.setattr(adapters.psutil, "virtual_memory", denied)
    assert MemoryAdapter().sample() is UNAVAILABLE


def test_failed_setup_is_retried(monkeypatch):
    """Test a setup failure degrades that sample only."""
    state = {"fail": True}

    def flaky(interval=None):
        if state["fail"]:
            raise OSError("not ready")
        return 25.0

    monkeypatch.setattr(adapters.psutil, "cpu_percent", flaky)
    adapter = CpuLoadAdapter()
    assert adapter.sample() is UNAVAILABLE

    state["fail"] = False
    assert adapter.sample() == 0.0
    assert adapter.sample() == 25.0


class TestProbeTotalMemory:
    """Tests for the one-time total memory probe."""

    def test_reads_total(self):
        """Test a normal total is returned undegraded."""
        assert probe_total_memory(lambda: 8192) == (8192, False)

    def test_zero_total_uses_sentinel(self):
        """Test a zero total is replaced by the sentinel 1."""
        assert probe_total_memory(lambda: 0) == (1, True)

    def test_error_uses_sentinel(self):
        """Test a failing reader is replaced by the sentinel 1."""

        def broken():
            raise OSError("wmi unavailable")

        assert probe_total_memory(broken) == (1, True)

    def test_default_reader_uses_psutil(self, monkeypatch):
        """Test the default reader asks psutil."""
        monkeypatch.setattr(adapters.psutil, "virtual_memory", lambda: svmem(4096, 1024))
        assert probe_total_memory() == (4096, False)


class TestDiskThroughputAdapter:
    """Tests for disk rate computation."""

    def _adapter(self, monkeypatch, counters):
        clock = FakeClock()
        monkeypatch.setattr(adapters.psutil, "disk_io_counters", lambda: counters[0])
        return DiskThroughputAdapter(clock=clock), clock

    def test_first_sample_is_zero(self, monkeypatch):
        """Test the first sample only sets the baseline."""
        adapter, _ = self._adapter(monkeypatch, [sdiskio(1000, 2000)])
        rates = adapter.sample()
        assert rates == DiskRates.from_bytes(0.0, 0.0)

    def test_first_sample_is_zero_with_busy_disk(self, monkeypatch):
        """Test the baseline sample reports zero even while counters climb."""
        reads = [0]

        def busy_counters():
            reads[0] += 4096
            return sdiskio(reads[0], reads[0])

        monkeypatch.setattr(adapters.psutil, "disk_io_counters", busy_counters)
        adapter = DiskThroughputAdapter()

        assert adapter.sample() == DiskRates.from_bytes(0.0, 0.0)
        assert reads[0] == 4096

    def test_rates_from_deltas(self, monkeypatch):
        """Test rates are byte deltas over elapsed time, converted to MB/s."""
        counters = [sdiskio(0, 0)]
        adapter, clock = self._adapter(monkeypatch, counters)
        adapter.sample()

        counters[0] = sdiskio(2 * 1048576, 0)
        clock.now += 2.0
        rates = adapter.sample()

        assert rates.read_bytes_per_sec == pytest.approx(1048576)
        assert rates.read_mb_per_sec == pytest.approx(1.0)
        assert rates.write_mb_per_sec == 0.0

    def test_counter_reset_reports_zero(self, monkeypatch):
        """Test a counter going backwards is not reported as negative."""
        counters = [sdiskio(5000, 5000)]
        adapter, clock = self._adapter(monkeypatch, counters)
        adapter.sample()

        counters[0] = sdiskio(10, 10)
        clock.now += 1.0
        rates = adapter.sample()

        assert rates.read_bytes_per_sec == 0.0
        assert rates.write_bytes_per_sec == 0.0

    def test_missing_counters_unavailable(self, monkeypatch):
        """Test a system without disk counters reports UNAVAILABLE."""
        adapter, _ = self._adapter(monkeypatch, [None])
        assert adapter.sample() is UNAVAILABLE


class TestCpuTemperatureAdapter:
    """Tests for CPU temperature selection."""

    def test_prefers_package_sensor(self):
        """Test the package sensor is selected over per-core sensors."""
        monitor = HardwareMonitor([FakeSource("psutil", [Hardware(HardwareType.CPU, "coretemp", CORE_TEMPS)])])
        assert CpuTemperatureAdapter(monitor).sample() == 61.0

    def test_amd_labels(self):
        """Test the k10temp table selects Tctl."""
        device = Hardware(
            HardwareType.CPU,
            "k10temp",
            (
                Sensor(SensorType.TEMPERATURE, "Tccd1", 58.0),
                Sensor(SensorType.TEMPERATURE, "Tctl", 63.5),
            ),
        )
        monitor = HardwareMonitor([FakeSource("psutil", [device])])
        assert CpuTemperatureAdapter(monitor).sample() == 63.5

    def test_reads_only_cpu_backends(self):
        """Test GPU backends are not queried for the CPU temperature."""
        cpu = FakeSource("psutil", [Hardware(HardwareType.CPU, "coretemp", CORE_TEMPS)], provides=(HardwareType.CPU,))
        gpu = FakeSource("nvml", [Hardware(HardwareType.GPU_NVIDIA, "RTX 4070")], provides=(HardwareType.GPU_NVIDIA,))
        adapter = CpuTemperatureAdapter(HardwareMonitor([cpu, gpu]))

        assert adapter.sample() == 61.0
        assert cpu.read_calls == 1
        assert gpu.read_calls == 0

    def test_no_cpu_device_unavailable(self):
        """Test UNAVAILABLE when no CPU chip is present."""
        monitor = HardwareMonitor([FakeSource("psutil", [Hardware(HardwareType.OTHER, "acpitz")])])
        assert CpuTemperatureAdapter(monitor).sample() is UNAVAILABLE

    def test_no_matching_label_unavailable(self):
        """Test UNAVAILABLE when no sensor label matches."""
        device = Hardware(HardwareType.CPU, "coretemp", (Sensor(SensorType.TEMPERATURE, "Ambient", 30.0),))
        monitor = HardwareMonitor([FakeSource("psutil", [device])])
        assert CpuTemperatureAdapter(monitor).sample() is UNAVAILABLE

    def test_failed_monitor_unavailable(self):
        """Test a failed provider degrades to UNAVAILABLE."""
        monitor = HardwareMonitor([FakeSource("psutil", fail_open=True)])
        assert CpuTemperatureAdapter(monitor).sample() is UNAVAILABLE


class TestGpuAdapter:
    """Tests for GPU temperature and usage selection."""

    def _monitor(self, *sensors_):
        return HardwareMonitor([FakeSource("nvml", [Hardware(HardwareType.GPU_NVIDIA, "RTX 4070", sensors_)])])

    def test_reads_temperature_and_load(self):
        """Test both GPU Core readings are returned together."""
        monitor = self._monitor(
            Sensor(SensorType.LOAD, "GPU Memory", 80.0),
            Sensor(SensorType.TEMPERATURE, "GPU Core", 65.0),
            Sensor(SensorType.LOAD, "GPU Core", 30.0),
        )
        assert GpuAdapter(monitor).sample() == GpuReading(temperature_celsius=65.0, usage_percent=30.0)

    def test_missing_load_sensor(self):
        """Test a partial reading keeps the available member."""
        monitor = self._monitor(Sensor(SensorType.TEMPERATURE, "GPU Core", 70.0))
        assert GpuAdapter(monitor).sample() == GpuReading(temperature_celsius=70.0, usage_percent=None)

    def test_no_gpu_unavailable(self):
        """Test UNAVAILABLE without an NVIDIA GPU."""
        monitor = HardwareMonitor([FakeSource("nvml", [])])
        assert GpuAdapter(monitor).sample() is UNAVAILABLE

    def test_no_matching_sensor_unavailable(self):
        """Test UNAVAILABLE when the GPU has no GPU Core sensors."""
        monitor = self._monitor(Sensor(SensorType.TEMPERATURE, "Hot Spot", 80.0))
        assert GpuAdapter(monitor).sample() is UNAVAILABLE
