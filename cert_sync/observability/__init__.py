"""
Observability Module — Metrics and health responders.
"""

from .health import HealthStatus, HeartbeatHealth, check_heartbeat
from .metrics import export_prometheus
from .server import Responder, create_health_app, create_metrics_app

__all__ = [
    "export_prometheus",
    "check_heartbeat",
    "HealthStatus",
    "HeartbeatHealth",
    "Responder",
    "create_metrics_app",
    "create_health_app",
]
