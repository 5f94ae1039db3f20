"""Sampling scheduler for pcmon."""

import logging
import threading
import time
from collections.abc import Callable
from enum import Enum

from pcmon.aggregator import SnapshotAggregator
from pcmon.models import DEFAULT_INTERVAL, SamplingConfig, SnapshotSink

logger = logging.getLogger(__name__)


class SchedulerState(Enum):
    """Lifecycle states of the Scheduler."""

    STOPPED = "stopped"
    RUNNING = "running"


class Scheduler:
    """
    Periodic driver that runs aggregation cycles and hands snapshots to a sink.

    Runs in a daemon thread. Cycles never overlap: after each cycle the thread
    waits for whatever is left of the interval, or not at all if the cycle
    overran. A new interval applies from the next wait. stop() interrupts a
    pending wait at once but lets a running cycle finish; the hardware handle
    and the sink are closed after the last cycle. A stopped scheduler cannot
    be restarted.
    """

    def __init__(
        self,
        aggregator: SnapshotAggregator,
        sink: SnapshotSink,
        interval: int = DEFAULT_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize the Scheduler.

        Args:
            aggregator: Builds one Snapshot per cycle.
            sink: Receives each Snapshot.
            interval: Initial sampling interval in seconds, 1-60.
            clock: Monotonic time source.

        Raises:
            ConfigurationOutOfRange: If interval is outside 1-60.
        """
        self._aggregator = aggregator
        self._sink = sink
        self._config = SamplingConfig(interval)
        self._clock = clock
        self._stop_event = threading.Event()
        self._release_lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._state = SchedulerState.STOPPED
        self._shutdown = False
        self._released = False
        self._cycles = 0

    @property
    def interval(self) -> int:
        """Current sampling interval in seconds."""
        return self._config.interval

    @property
    def state(self) -> SchedulerState:
        """Current lifecycle state."""
        return self._state

    @property
    def is_running(self) -> bool:
        """Check if the scheduler thread is running."""
        return self._thread is not None and self._thread.is_alive()

    @property
    def cycles(self) -> int:
        """Number of snapshots delivered to the sink."""
        return self._cycles

    def set_interval(self, seconds: int) -> None:
        """
        Change the sampling interval without restarting.

        Raises:
            ConfigurationOutOfRange: If seconds is outside 1-60; the current
                interval is kept.
        """
        previous = self._config.set_interval(seconds)
        if previous != seconds:
            logger.info("Sampling interval changed from %ds to %ds", previous, seconds)

    def start(self) -> None:
        """Start the sampling thread."""
        if self._shutdown:
            raise RuntimeError("Scheduler has been stopped and cannot be restarted")
        if self.is_running:
            return

        self._stop_event.clear()
        self._state = SchedulerState.RUNNING
        self._thread = threading.Thread(
            target=self._run,
            daemon=True,
            name="Scheduler",
        )
        self._thread.start()
        logger.info("Scheduler started with %ds interval", self.interval)

    def stop(self, timeout: float | None = 5.0) -> None:
        """
        Stop the sampling thread.

        Args:
            timeout: How long to wait for an in-flight cycle (seconds).
        """
        self._shutdown = True
        self._stop_event.set()
        thread = self._thread
        if thread is not None:
            thread.join(timeout=timeout)
            if thread.is_alive():
                # The thread releases resources itself once its cycle ends
                logger.warning("Scheduler cycle still running after %.1fs", timeout or 0.0)
                return
            self._thread = None
        self._state = SchedulerState.STOPPED
        self._release("stopped")

    def run_cycle(self) -> None:
        """Collect one Snapshot and push it to the sink."""
        try:
            snapshot = self._aggregator.collect()
        except Exception:
            logger.exception("Aggregation cycle failed")
            return
        try:
            self._sink.push(snapshot)
        except Exception:
            logger.exception("Snapshot delivery failed")
        else:
            self._cycles += 1

    def _wait(self, timeout: float) -> bool:
        """Wait until the timeout elapses or stop is requested."""
        return self._stop_event.wait(timeout=timeout)

    def _run(self) -> None:
        """Main sampling loop running in the background thread."""
        reason = "stopped"
        try:
            while not self._stop_event.is_set():
                # run_cycle() contains its own failures; anything raised here
                # comes from the clock or the wait
                try:
                    started = self._clock()
                    self.run_cycle()
                    remaining = max(self._config.interval - (self._clock() - started), 0.0)
                    self._wait(remaining)
                except Exception as exc:
                    logger.error("Scheduler timer failed: %s", exc, exc_info=True)
                    reason = f"timer failure: {exc}"
                    break
        finally:
            self._shutdown = True
            self._state = SchedulerState.STOPPED
            self._release(reason)

    def _release(self, reason: str) -> None:
        """Close the hardware handle and the sink, exactly once."""
        with self._release_lock:
            if self._released:
                return
            self._released = True
        try:
            self._aggregator.close()
        except Exception:
            logger.exception("Failed to close hardware monitor")
        self._sink.close(reason)
        logger.info("Scheduler stopped (%s)", reason)
