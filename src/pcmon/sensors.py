"""
Hardware monitoring provider for pcmon.

Exposes CPU temperature chips (via psutil) and NVIDIA GPUs (via NVML) as a
flat list of Hardware devices, each carrying typed, named Sensors. Adapters
pick readings out of that list with select_sensor().
"""

import logging
import threading
from collections.abc import Iterable, Sequence
from typing import Protocol

import psutil
import pynvml

from pcmon.errors import ProviderInitializationFailure, SourceUnavailable
from pcmon.models import Hardware, HardwareType, Sensor, SensorType

logger = logging.getLogger(__name__)

# psutil temperature chips that report on the CPU package or its cores.
CPU_CHIPS = ("coretemp", "k10temp", "zenpower", "cpu_thermal", "cpu-thermal", "soc_thermal")

# Label substrings per CPU chip, in priority order. Vendor naming is not
# stable across drivers, so unknown chips fall back to the default table.
DEFAULT_CPU_TEMPERATURE_LABELS = ("Package", "Tctl", "Tdie", "Core #1", "Core 0")
CPU_TEMPERATURE_LABELS: dict[str, tuple[str, ...]] = {
    "coretemp": ("Package", "Core 0"),
    "k10temp": ("Tctl", "Tdie", "Tccd1"),
    "zenpower": ("Tdie", "Tctl"),
    "cpu_thermal": ("cpu_thermal",),
    "cpu-thermal": ("cpu-thermal",),
    "soc_thermal": ("soc_thermal",),
}

GPU_TEMPERATURE_LABELS = ("GPU Core",)
GPU_LOAD_LABELS = ("GPU Core",)


def labels_for(hardware: Hardware, table: dict[str, tuple[str, ...]], default: tuple[str, ...]) -> tuple[str, ...]:
    """Return the label table for a device, or the default one."""
    return table.get(hardware.name, default)


def select_sensor(
    sensors: Iterable[Sensor],
    sensor_type: SensorType,
    labels: Sequence[str],
) -> Sensor | None:
    """
    Select a sensor by label substring.

    Labels are tried in order; for each label the first sensor of the
    requested type whose name contains it wins. Sensors without a value
    are skipped. Returns None when nothing matches.
    """
    candidates = [s for s in sensors if s.sensor_type is sensor_type and s.value is not None]
    for label in labels:
        for sensor in candidates:
            if label in sensor.name:
                return sensor
    return None


def find_hardware(devices: Iterable[Hardware], hardware_type: HardwareType) -> list[Hardware]:
    """Return all devices of the given type, in provider order."""
    return [device for device in devices if device.hardware_type is hardware_type]


class HardwareSource(Protocol):
    """One backend feeding devices into the HardwareMonitor."""

    name: str
    provides: tuple[HardwareType, ...]

    def open(self) -> None:
        """Perform one-time setup; raise on failure."""

    def read(self) -> list[Hardware]:
        """Return current devices with fresh sensor values."""

    def close(self) -> None:
        """Release the backend."""


class PsutilTemperatureSource:
    """CPU temperature chips from psutil.sensors_temperatures()."""

    name = "psutil"
    provides = (HardwareType.CPU, HardwareType.OTHER)

    def open(self) -> None:
        if not hasattr(psutil, "sensors_temperatures"):
            raise ProviderInitializationFailure("psutil does not expose temperatures on this platform")

    def read(self) -> list[Hardware]:
        temps = psutil.sensors_temperatures()
        devices: list[Hardware] = []
        for chip, entries in (temps or {}).items():
            hardware_type = HardwareType.CPU if chip in CPU_CHIPS else HardwareType.OTHER
            sensors = tuple(
                Sensor(
                    sensor_type=SensorType.TEMPERATURE,
                    name=entry.label or chip,
                    value=float(entry.current) if entry.current is not None else None,
                )
                for entry in entries
            )
            devices.append(Hardware(hardware_type=hardware_type, name=chip, sensors=sensors))
        return devices

    def close(self) -> None:
        pass


class NvmlSource:
    """
    NVIDIA GPUs through NVML (nvidia-ml-py).

    Each query is made separately: a query the board does not support
    leaves that sensor without a value, and a GPU whose handle cannot be
    obtained is skipped without hiding the others.
    """

    name = "nvml"
    provides = (HardwareType.GPU_NVIDIA,)

    def __init__(self) -> None:
        self._initialized = False

    def open(self) -> None:
        try:
            pynvml.nvmlInit()
        except pynvml.NVMLError as exc:
            raise ProviderInitializationFailure(f"NVML init failed: {exc}") from exc
        self._initialized = True

    def _query(self, what: str, func, *args):
        try:
            return func(*args)
        except pynvml.NVMLError as exc:
            logger.debug("NVML %s query failed: %s", what, exc)
            return None

    def _read_device(self, index: int) -> Hardware | None:
        handle = self._query("handle", pynvml.nvmlDeviceGetHandleByIndex, index)
        if handle is None:
            return None

        name = self._query("name", pynvml.nvmlDeviceGetName, handle)
        if isinstance(name, bytes):
            name = name.decode("utf-8", errors="replace")
        temperature = self._query("temperature", pynvml.nvmlDeviceGetTemperature, handle, pynvml.NVML_TEMPERATURE_GPU)
        util = self._query("utilization", pynvml.nvmlDeviceGetUtilizationRates, handle)

        return Hardware(
            hardware_type=HardwareType.GPU_NVIDIA,
            name=name or f"NVIDIA GPU {index}",
            sensors=(
                Sensor(SensorType.TEMPERATURE, "GPU Core", float(temperature) if temperature is not None else None),
                Sensor(SensorType.LOAD, "GPU Core", float(util.gpu) if util is not None else None),
                Sensor(SensorType.LOAD, "GPU Memory", float(util.memory) if util is not None else None),
            ),
        )

    def read(self) -> list[Hardware]:
        devices: list[Hardware] = []
        for index in range(pynvml.nvmlDeviceGetCount()):
            device = self._read_device(index)
            if device is not None:
                devices.append(device)
        return devices

    def close(self) -> None:
        if self._initialized:
            self._initialized = False
            pynvml.nvmlShutdown()


def default_sources() -> list[HardwareSource]:
    """Sources used when none are given."""
    return [PsutilTemperatureSource(), NvmlSource()]


class HardwareMonitor:
    """
    Shared, lazily opened handle onto the hardware sensor backends.

    The handle opens on first use. If no backend can be opened the monitor
    is marked failed for the rest of the process and every read raises
    SourceUnavailable; it is never retried. Backends that fail to open
    individually are skipped while the others keep working.
    """

    def __init__(self, sources: Sequence[HardwareSource] | None = None) -> None:
        """
        Initialize the HardwareMonitor.

        Args:
            sources: Backends to query. Defaults to psutil and NVML.
        """
        self._sources = list(sources) if sources is not None else default_sources()
        self._opened: list[HardwareSource] = []
        self._lock = threading.Lock()
        self._is_open = False
        self._failed = False
        self._closed = False

    @property
    def failed(self) -> bool:
        """True when initialization failed for every backend."""
        return self._failed

    @property
    def closed(self) -> bool:
        """True once close() has run."""
        return self._closed

    def open(self) -> None:
        """
        Open all backends.

        Raises:
            ProviderInitializationFailure: If no backend could be opened.
        """
        with self._lock:
            self._open_locked()

    def _open_locked(self) -> None:
        if self._is_open:
            return
        if self._failed:
            raise ProviderInitializationFailure("hardware monitor failed to initialize")
        if self._closed:
            raise SourceUnavailable("hardware monitor is closed")

        for source in self._sources:
            try:
                source.open()
            except Exception as exc:
                logger.info("Hardware source %s unavailable: %s", source.name, exc)
                continue
            self._opened.append(source)

        if not self._opened:
            self._failed = True
            logger.warning("Hardware monitor failed to initialize; temperature and GPU metrics disabled")
            raise ProviderInitializationFailure("no hardware monitoring backend could be opened")
        self._is_open = True

    def hardware(self, hardware_type: HardwareType | None = None) -> list[Hardware]:
        """
        Return devices from the opened backends.

        Args:
            hardware_type: Only query backends that provide this type and
                only return devices of it. None reads everything.

        Raises:
            SourceUnavailable: If the monitor is failed or closed.
        """
        with self._lock:
            try:
                self._open_locked()
            except ProviderInitializationFailure as exc:
                raise SourceUnavailable(str(exc)) from exc
            devices: list[Hardware] = []
            for source in self._opened:
                if hardware_type is not None and hardware_type not in source.provides:
                    continue
                try:
                    devices.extend(source.read())
                except Exception as exc:
                    logger.debug("Hardware source %s read failed: %s", source.name, exc)
            if hardware_type is not None:
                devices = find_hardware(devices, hardware_type)
            return devices

    def close(self) -> None:
        """Close opened backends. Safe to call more than once."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._is_open = False
            for source in self._opened:
                try:
                    source.close()
                except Exception as exc:
                    logger.debug("Hardware source %s close failed: %s", source.name, exc)
            self._opened.clear()
