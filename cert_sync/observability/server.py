"""
Responders — Metrics and health listeners served alongside the loop.

Two small Flask applications, each served by its own persistent werkzeug
server in a daemon thread. Each handles one request at a time and only
reads ControllerStatus through ``snapshot()``.

    :9090  any path → Prometheus text (200)
    :8080  any path → "healthy" (200) | "stale" / "no heartbeat" (503)
"""

from __future__ import annotations

import logging
import threading
from typing import Optional

from flask import Blueprint, Flask, Response, current_app
from werkzeug.serving import BaseWSGIServer, make_server

from ..engine.status import ControllerStatus
from .health import check_heartbeat
from .metrics import CONTENT_TYPE, export_prometheus

logger = logging.getLogger(__name__)

metrics_bp = Blueprint("metrics", __name__)
health_bp = Blueprint("health", __name__)


def _status() -> ControllerStatus:
    return current_app.config["CONTROLLER_STATUS"]


@metrics_bp.route("/", defaults={"path": ""})
@metrics_bp.route("/<path:path>")
def metrics_endpoint(path: str):
    """Render the current counters."""
    body = export_prometheus(_status().snapshot())
    return Response(body, status=200, content_type=CONTENT_TYPE)


@health_bp.route("/", defaults={"path": ""})
@health_bp.route("/<path:path>")
def health_endpoint(path: str):
    """Report heartbeat freshness."""
    result = check_heartbeat(_status().snapshot())
    return Response(result.message, status=result.http_status, content_type="text/plain")


def create_metrics_app(status: ControllerStatus) -> Flask:
    """Create the metrics application."""
    app = Flask(__name__)
    app.config["CONTROLLER_STATUS"] = status
    app.register_blueprint(metrics_bp)
    return app


def create_health_app(status: ControllerStatus) -> Flask:
    """Create the health application."""
    app = Flask(__name__)
    app.config["CONTROLLER_STATUS"] = status
    app.register_blueprint(health_bp)
    return app


class Responder:
    """A persistent listener serving one Flask app from a background thread."""

    def __init__(self, name: str, app: Flask, host: str = "0.0.0.0", port: int = 0):
        self.name = name
        self.app = app
        self.host = host
        self.port = port
        self._server: Optional[BaseWSGIServer] = None
        self._thread: Optional[threading.Thread] = None

    def start(self) -> str:
        if self._server is not None:
            return self.url
        self._server = make_server(self.host, self.port, self.app, threaded=False)
        self._thread = threading.Thread(
            target=self._server.serve_forever,
            name=f"{self.name}-responder",
            daemon=True,
        )
        self._thread.start()
        logger.info(f"{self.name.capitalize()} server started on :{self._server.server_port}")
        return self.url

    def stop(self) -> None:
        """Stop accepting connections and wait for the listener to exit."""
        server, self._server = self._server, None
        thread, self._thread = self._thread, None
        if server is None:
            return
        server.shutdown()
        server.server_close()
        if thread is not None:
            thread.join(timeout=5)
        logger.info(f"{self.name.capitalize()} server stopped")

    @property
    def url(self) -> str:
        if self._server is None:
            return f"http://{self.host}:{self.port}"
        return f"http://{self.host}:{self._server.server_port}"
