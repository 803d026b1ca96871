"""
Controller Status — Counters and heartbeat shared with the responders.

The reconcile loop is the only writer. The metrics and health responders
read through ``snapshot()``, which copies every field under one lock, so
a reader never sees a total that disagrees with success + failed.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from threading import Lock
from typing import Optional

from ..models.certificate import SyncResult


@dataclass(frozen=True)
class StatusSnapshot:
    """Point-in-time copy of ControllerStatus."""

    total_syncs: int
    success_syncs: int
    failed_syncs: int
    last_sync_time: Optional[float]

    @property
    def has_heartbeat(self) -> bool:
        return self.last_sync_time is not None


class ControllerStatus:
    """Process-wide counters. Initialized to zero, never reset."""

    def __init__(self):
        self._lock = Lock()
        self._total = 0
        self._success = 0
        self._failed = 0
        self._last_sync_time: Optional[float] = None

    def record(self, result: SyncResult) -> None:
        """Fold one sync attempt into the counters."""
        with self._lock:
            self._total += 1
            if result.ok:
                self._success += 1
            else:
                self._failed += 1

    def heartbeat(self, timestamp: Optional[float] = None) -> float:
        """Mark a completed tick."""
        ts = time.time() if timestamp is None else timestamp
        with self._lock:
            self._last_sync_time = ts
        return ts

    def snapshot(self) -> StatusSnapshot:
        with self._lock:
            return StatusSnapshot(
                total_syncs=self._total,
                success_syncs=self._success,
                failed_syncs=self._failed,
                last_sync_time=self._last_sync_time,
            )
