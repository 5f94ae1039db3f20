"""pcmon - Main Textual application."""

from textual.app import App, ComposeResult
from textual.widgets import Footer, Static

from pcmon.aggregator import SnapshotAggregator
from pcmon.errors import ConfigurationOutOfRange
from pcmon.mailbox import SnapshotMailbox
from pcmon.models import DEFAULT_INTERVAL, Snapshot
from pcmon.monitor import Scheduler

NOT_AVAILABLE = "Not available"


def bar(percent: float, color: str = "green", width: int = 20) -> str:
    """Render a percentage as a fixed-width text bar."""
    filled = int(max(min(percent, 100.0), 0.0) / 100 * width)
    return f"[{color}]" + "█" * filled + f"[/{color}]" + "[dim]" + "░" * (width - filled) + "[/dim]"


def format_temperature(value: float | None) -> str:
    """Format a Celsius reading, or 'Not available'."""
    if value is None:
        return NOT_AVAILABLE
    return f"{value:.1f}°C"


def render_snapshot(snapshot: Snapshot, interval: int) -> str:
    """Render a snapshot as Rich markup."""
    lines = [f"CPU Usage     \\[{bar(snapshot.cpu_usage_percent)}] {snapshot.cpu_usage_percent:5.1f}%"]

    if snapshot.memory_degraded:
        lines.append(f"Memory        {NOT_AVAILABLE}")
    else:
        available_mb = snapshot.available_memory_bytes / (1024**2)
        lines.append(
            f"Memory        \\[{bar(snapshot.memory_used_percent, 'cyan')}] "
            f"{snapshot.memory_used_percent:5.1f}%  ({available_mb:.0f} MB available)"
        )

    lines.append(f"Disk Read     {snapshot.disk_read_mb_per_sec:.2f} MB/s")
    lines.append(f"Disk Write    {snapshot.disk_write_mb_per_sec:.2f} MB/s")
    lines.append(f"CPU Temp      {format_temperature(snapshot.cpu_temperature_celsius)}")

    gpu_temp = snapshot.gpu_temperature_celsius
    if gpu_temp is None:
        lines.append(f"GPU Temp      {NOT_AVAILABLE}")
    else:
        lines.append(f"GPU Temp      \\[{bar(gpu_temp, 'yellow')}] {format_temperature(gpu_temp)}")
    lines.append(
        f"GPU Usage     \\[{bar(snapshot.gpu_usage_percent, 'magenta')}] {snapshot.gpu_usage_percent:5.1f}%"
    )
    lines.append(f"Refresh rate  {interval} s")
    return "\n".join(lines)


class MetricsPanel(Static):
    """Panel showing the latest snapshot."""

    DEFAULT_CSS = """
    MetricsPanel {
        height: auto;
        padding: 1;
        background: $surface;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize MetricsPanel."""
        super().__init__("Collecting metrics...", *args, **kwargs)
        self._snapshot: Snapshot | None = None
        self._interval: int = DEFAULT_INTERVAL

    @property
    def snapshot(self) -> Snapshot | None:
        """Last rendered snapshot."""
        return self._snapshot

    def show(self, snapshot: Snapshot | None, interval: int) -> None:
        """Render a snapshot; keep the previous one if snapshot is None."""
        if snapshot is not None:
            self._snapshot = snapshot
        self._interval = interval
        if self._snapshot is not None:
            self.update(render_snapshot(self._snapshot, self._interval))


class PcmonApp(App):
    """Main pcmon application."""

    TITLE = "pcmon"
    SUB_TITLE = "PC Performance Monitor"

    CSS = """
    Screen {
        layout: vertical;
    }

    #status {
        color: $error;
        padding: 0 1;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("plus,equals_sign", "interval_up", "Slower"),
        ("minus", "interval_down", "Faster"),
    ]

    def __init__(self, interval: int = DEFAULT_INTERVAL, aggregator: SnapshotAggregator | None = None) -> None:
        """
        Initialize the PcmonApp.

        Args:
            interval: Initial refresh interval in seconds.
            aggregator: Snapshot source. Defaults to the psutil/NVML one.
        """
        super().__init__()
        self._mailbox = SnapshotMailbox()
        self._stopped_reason: str | None = None
        self._scheduler = Scheduler(aggregator or SnapshotAggregator.create(), self._mailbox, interval=interval)

    @property
    def stopped_reason(self) -> str | None:
        """Why sampling stopped on its own, if it did."""
        return self._stopped_reason

    @property
    def scheduler(self) -> Scheduler:
        """The sampling scheduler."""
        return self._scheduler

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield MetricsPanel(id="metrics")
        yield Static("", id="status")
        yield Footer()

    def on_mount(self) -> None:
        """Start the scheduler when the app is mounted."""
        self._scheduler.start()
        self.set_interval(0.25, self._check_for_updates)

    def on_unmount(self) -> None:
        """Stop sampling when the app shuts down."""
        self._scheduler.stop()

    def _check_for_updates(self) -> None:
        """Take the latest snapshot from the mailbox and refresh the UI."""
        snapshot = self._mailbox.get_latest()
        panel = self.query_one("#metrics", MetricsPanel)
        panel.show(snapshot, self._scheduler.interval)

        if self._stopped_reason is None and self._mailbox.closed and self._mailbox.close_reason != "stopped":
            self._stopped_reason = self._mailbox.close_reason
            status = self.query_one("#status", Static)
            status.update(f"Monitoring stopped: {self._mailbox.close_reason}")

    def _change_interval(self, delta: int) -> None:
        try:
            self._scheduler.set_interval(self._scheduler.interval + delta)
        except ConfigurationOutOfRange as exc:
            self.notify(str(exc), severity="warning")
            return
        self.query_one("#metrics", MetricsPanel).show(None, self._scheduler.interval)
        self.notify(f"Refresh rate: {self._scheduler.interval} s")

    def action_interval_up(self) -> None:
        """Increase the refresh interval by one second."""
        self._change_interval(1)

    def action_interval_down(self) -> None:
        """Decrease the refresh interval by one second."""
        self._change_interval(-1)

    def action_quit(self) -> None:
        """Handle quit action with graceful cleanup."""
        self._scheduler.stop()
        self.exit()
