"""
Metrics — Prometheus exposition of the controller's counters.

Renders a StatusSnapshot as five series:

    cert_sync_controller_up          gauge
    cert_sync_total_syncs            counter
    cert_sync_success_syncs          counter
    cert_sync_failed_syncs           counter
    cert_sync_last_sync_timestamp    gauge (0 before the first tick)

## Usage

    from cert_sync.observability.metrics import export_prometheus

    output = export_prometheus(status.snapshot())
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List

from ..engine.status import StatusSnapshot

CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"


@dataclass(frozen=True)
class MetricPoint:
    """A single rendered series."""

    name: str
    kind: str
    help_text: str
    value: int


def collect(snapshot: StatusSnapshot, prefix: str = "cert_sync") -> List[MetricPoint]:
    """Turn a snapshot into metric points."""
    last_sync = int(snapshot.last_sync_time) if snapshot.last_sync_time is not None else 0
    return [
        MetricPoint(f"{prefix}_controller_up", "gauge", "Controller status (1=up, 0=down)", 1),
        MetricPoint(f"{prefix}_total_syncs", "counter", "Total number of sync operations", snapshot.total_syncs),
        MetricPoint(f"{prefix}_success_syncs", "counter", "Successful sync operations", snapshot.success_syncs),
        MetricPoint(f"{prefix}_failed_syncs", "counter", "Failed sync operations", snapshot.failed_syncs),
        MetricPoint(f"{prefix}_last_sync_timestamp", "gauge", "Unix timestamp of last sync", last_sync),
    ]


def export_prometheus(snapshot: StatusSnapshot, prefix: str = "cert_sync") -> str:
    """Export metrics in Prometheus text format."""
    lines = []
    for point in collect(snapshot, prefix):
        lines.append(f"# HELP {point.name} {point.help_text}")
        lines.append(f"# TYPE {point.name} {point.kind}")
        lines.append(f"{point.name} {point.value}")
        lines.append("")
    return "\n".join(lines)
