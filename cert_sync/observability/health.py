"""
Health Check — Liveness based on the reconcile heartbeat.

Healthy if a tick has completed and the last one finished less than
``STALE_AFTER_SECONDS`` ago. Otherwise degraded, with the reason
"stale" or "no heartbeat".
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..engine.status import StatusSnapshot

STALE_AFTER_SECONDS = 120


class HealthStatus(str, Enum):
    """Health status levels."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"


@dataclass
class HeartbeatHealth:
    """Outcome of a heartbeat check."""

    status: HealthStatus
    message: str
    age_seconds: Optional[float] = None

    @property
    def healthy(self) -> bool:
        return self.status == HealthStatus.HEALTHY

    @property
    def http_status(self) -> int:
        return 200 if self.healthy else 503


def check_heartbeat(
    snapshot: StatusSnapshot,
    now: Optional[float] = None,
    stale_after: float = STALE_AFTER_SECONDS,
) -> HeartbeatHealth:
    """Compare now to the last completed tick."""
    if snapshot.last_sync_time is None:
        return HeartbeatHealth(status=HealthStatus.DEGRADED, message="no heartbeat")

    if now is None:
        now = time.time()
    age = now - snapshot.last_sync_time

    if age < stale_after:
        return HeartbeatHealth(status=HealthStatus.HEALTHY, message="healthy", age_seconds=age)
    return HeartbeatHealth(status=HealthStatus.DEGRADED, message="stale", age_seconds=age)
