"""
Controller — Wires discovery, the Syncer, the loop and the responders.

Startup order:

1. Log configuration
2. Prepare the private state directory and SSH identity (fatal on failure)
3. Record the proxy's host key (warning on failure)
4. Probe the Kubernetes API (fatal on failure)
5. Probe the proxy over SSH (warning on failure, retried by every sync)

Then the metrics and health responders start, and the reconcile loop
runs in the main thread until SIGTERM or SIGINT.
"""

from __future__ import annotations

import logging
import os
import shutil
import signal
from pathlib import Path
from typing import Optional

from .config.loader import ControllerConfig
from .discovery.cluster import ClusterClient
from .engine.reconcile import ReconcileLoop, TickResult
from .engine.status import ControllerStatus
from .engine.syncer import Syncer
from .errors import ConfigError, TransferError
from .observability.server import Responder, create_health_app, create_metrics_app
from .persistence.hash_store import HashStore
from .remote.ssh import RemoteHost

logger = logging.getLogger(__name__)


def prepare_state_dir(config: ControllerConfig) -> None:
    """Create the private state directory tree with owner-only access."""
    for path in (config.state_dir, config.scratch_dir, config.identity_path.parent):
        path.mkdir(parents=True, exist_ok=True)
        os.chmod(path, 0o700)


def prepare_identity(config: ControllerConfig) -> Path:
    """
    Copy the SSH private key into the state directory with mode 0600.

    Mounted secrets are often group- or world-readable, which ssh refuses.

    Raises:
        ConfigError: If the key does not exist
    """
    if not config.ssh_key_path.is_file():
        raise ConfigError(f"SSH key not found at {config.ssh_key_path}")

    target = config.identity_path
    target.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(config.ssh_key_path, target)
    os.chmod(target, 0o600)
    logger.debug("SSH key copied and permissions set")
    return target


class Controller:
    """The running cert-sync process."""

    def __init__(
        self,
        config: ControllerConfig,
        cluster: ClusterClient,
        remote: RemoteHost,
        hash_store: HashStore,
        status: Optional[ControllerStatus] = None,
    ):
        self.config = config
        self.cluster = cluster
        self.remote = remote
        self.hash_store = hash_store
        self.status = status or ControllerStatus()

        self.syncer = Syncer(
            cluster=cluster,
            remote=remote,
            hash_store=hash_store,
            scratch_dir=config.scratch_dir,
            remote_cert_dir=config.remote_cert_dir,
            remote_config_dir=config.remote_config_dir,
            generate_config=not config.skip_config_generation,
        )
        self.loop = ReconcileLoop(
            discover=cluster.discover,
            syncer=self.syncer,
            status=self.status,
            interval=config.reconcile_interval,
        )
        self.responders = [
            Responder("metrics", create_metrics_app(self.status), port=config.metrics_port),
            Responder("health", create_health_app(self.status), port=config.health_port),
        ]

    @classmethod
    def from_config(cls, config: ControllerConfig) -> "Controller":
        """
        Build a controller against the real cluster and proxy.

        Raises:
            ConfigError: If the SSH key is missing
            OrchestrationUnreachable: If no Kubernetes config is available
        """
        prepare_state_dir(config)
        identity = prepare_identity(config)

        remote = RemoteHost(
            host=config.proxy_ip,
            user=config.remote_user,
            identity_path=identity,
            known_hosts_path=config.known_hosts_path,
            connect_timeout=config.ssh_timeout,
            command_timeout=config.ssh_command_timeout,
        )
        return cls(
            config=config,
            cluster=ClusterClient.from_environment(),
            remote=remote,
            hash_store=HashStore(config.hash_store_path),
        )

    def setup(self) -> None:
        """
        Run the startup probes.

        Raises:
            OrchestrationUnreachable: If the Kubernetes API does not answer
        """
        logger.info("Configuration:")
        for line in self.config.describe():
            logger.info(f"  {line}")

        logger.info("Adding proxy to known hosts...")
        if not self.remote.add_to_known_hosts():
            logger.warning("Could not add proxy to known hosts, continuing anyway")

        logger.info("Testing Kubernetes API access...")
        self.cluster.probe()

        logger.info("Testing SSH connection to proxy...")
        if self.probe_remote():
            logger.info("SSH connection successful")
        else:
            logger.warning("Cannot connect to proxy via SSH - will retry during sync")

        logger.info("Setup complete")

    def probe_remote(self) -> bool:
        try:
            self.remote.test_connection()
        except TransferError as e:
            logger.debug(f"SSH probe failed: {e}")
            return False
        return True

    def run_once(self) -> TickResult:
        """Single reconciliation pass without responders."""
        return self.loop.run_once()

    def run(self) -> None:
        """Start responders and reconcile until a shutdown signal arrives."""
        for responder in self.responders:
            responder.start()

        signal.signal(signal.SIGTERM, self._handle_signal)
        signal.signal(signal.SIGINT, self._handle_signal)

        try:
            self.loop.run_forever()
        finally:
            self.stop_responders()
            logger.info("Goodbye")

    def _handle_signal(self, signum, frame) -> None:
        logger.info(f"Received {signal.Signals(signum).name}, shutting down...")
        self.shutdown()

    def shutdown(self) -> None:
        """Stop accepting responder connections and let the current source finish."""
        self.stop_responders()
        self.loop.stop()

    def stop_responders(self) -> None:
        for responder in self.responders:
            responder.stop()
