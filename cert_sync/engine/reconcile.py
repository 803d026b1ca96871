"""
Reconcile Loop — Discovery + sync on a fixed cadence.

The loop has two states. It starts Reconciling immediately (an initial
tick before the first wait), then alternates between Idle (waiting
``interval`` seconds) and Reconciling. Sources inside a tick are synced
strictly one after another, so at most one remote connection is open and
the hash store never sees concurrent writes.

There is no backoff: the fixed interval is the only retry mechanism.

## Tick ID Format

    T-{YYYYMMDD}T{HHMMSS}-{RANDOM}
    Example: T-20260204T221903-92929A

## Usage

    loop = ReconcileLoop(cluster.discover, syncer, status, interval=30)
    loop.run_forever()    # blocks until loop.stop()
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional
from uuid import uuid4

from ..models.certificate import CertificateSource, SyncOutcome, SyncResult
from .status import ControllerStatus
from .syncer import Syncer

logger = logging.getLogger(__name__)


@dataclass
class TickResult:
    """Result of one reconciliation pass."""

    tick_id: str
    started_at: str
    ended_at: Optional[str] = None
    duration_ms: int = 0

    found: int = 0
    unchanged: List[str] = field(default_factory=list)
    transferred: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    # Set when shutdown was requested before every source was processed
    interrupted: bool = False

    @property
    def succeeded(self) -> int:
        return len(self.unchanged) + len(self.transferred)


def generate_tick_id() -> str:
    """Generate a unique tick ID."""
    ts = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S")
    suffix = uuid4().hex[:6].upper()
    return f"T-{ts}-{suffix}"


def _iso_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class ReconcileLoop:
    """Ties discovery and the Syncer together and owns ControllerStatus."""

    def __init__(
        self,
        discover: Callable[[], Iterable[CertificateSource]],
        syncer: Syncer,
        status: ControllerStatus,
        interval: int = 30,
    ):
        self.discover = discover
        self.syncer = syncer
        self.status = status
        self.interval = interval
        self._stop = threading.Event()

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    def stop(self) -> None:
        """Request shutdown. An in-flight source is allowed to finish."""
        self._stop.set()

    def run_once(self) -> TickResult:
        """Execute one full tick: discover, sync each source, heartbeat."""
        start_time = time.time()
        tick_id = generate_tick_id()
        result = TickResult(tick_id=tick_id, started_at=_iso_now())
        log_extra = {"tick_id": tick_id}

        logger.info(f"Starting reconciliation {tick_id}", extra=log_extra)

        for source in self.discover():
            if self._stop.is_set():
                result.interrupted = True
                logger.info("Shutdown requested, leaving remaining sources for later", extra=log_extra)
                break

            result.found += 1
            try:
                sync_result = self.syncer.sync(source)
            except Exception as e:
                logger.exception(f"Unexpected error syncing {source.domain}", extra=log_extra)
                sync_result = SyncResult(
                    source=source,
                    outcome=SyncOutcome.FAILED,
                    reason="internal",
                    message=str(e),
                )

            self.status.record(sync_result)
            if sync_result.outcome == SyncOutcome.UNCHANGED:
                result.unchanged.append(source.domain)
            elif sync_result.outcome == SyncOutcome.TRANSFERRED:
                result.transferred.append(source.domain)
            else:
                result.failed.append(source.domain)

        result.ended_at = _iso_now()
        result.duration_ms = int((time.time() - start_time) * 1000)

        if not result.interrupted:
            self.status.heartbeat()

        snapshot = self.status.snapshot()
        logger.info(
            f"Reconciliation complete [{result.duration_ms}ms] "
            f"Found: {result.found} | Total: {snapshot.total_syncs} | "
            f"✓ Success: {snapshot.success_syncs} | ✗ Failed: {snapshot.failed_syncs}",
            extra=log_extra,
        )
        return result

    def run_forever(self) -> None:
        """Tick immediately, then every ``interval`` seconds until stopped."""
        logger.info(f"Starting reconciliation loop (interval: {self.interval}s)")
        while not self._stop.is_set():
            try:
                self.run_once()
            except Exception:
                logger.exception("Reconciliation error (will retry)")

            self._stop.wait(timeout=self.interval)
        logger.info("Reconciliation loop stopped")
