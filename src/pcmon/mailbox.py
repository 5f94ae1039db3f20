"""Single-slot handoff between the scheduler thread and the UI."""

import threading
from queue import Empty, Full, Queue

from pcmon.models import Snapshot


class SnapshotMailbox:
    """
    Holds at most one undelivered Snapshot.

    push() never blocks: an unread Snapshot is replaced by the newer one, so
    a slow reader only ever sees the latest state. There is a single
    producer, which keeps delivery in cycle order.
    """

    def __init__(self) -> None:
        self._queue: Queue[Snapshot] = Queue(maxsize=1)
        self._close_reason: str | None = None
        self._closed = threading.Event()
        self._dropped = 0

    @property
    def closed(self) -> bool:
        """True once the producer has signalled shutdown."""
        return self._closed.is_set()

    @property
    def close_reason(self) -> str | None:
        """Reason given by the producer when it closed the mailbox."""
        return self._close_reason

    @property
    def dropped(self) -> int:
        """Number of snapshots replaced before they were read."""
        return self._dropped

    def push(self, snapshot: Snapshot) -> None:
        """Store a snapshot, replacing any unread one."""
        try:
            self._queue.put_nowait(snapshot)
        except Full:
            try:
                self._queue.get_nowait()
                self._dropped += 1
            except Empty:
                pass  # Reader took it in between
            self._queue.put_nowait(snapshot)

    def get_latest(self, timeout: float | None = None) -> Snapshot | None:
        """
        Take the pending snapshot, if any.

        Args:
            timeout: Seconds to wait for one. None returns immediately.
        """
        try:
            if timeout is None:
                return self._queue.get_nowait()
            return self._queue.get(timeout=timeout)
        except Empty:
            return None

    def close(self, reason: str) -> None:
        """Mark the mailbox closed; the first reason wins."""
        if not self._closed.is_set():
            self._close_reason = reason
            self._closed.set()
