"""
Config Loader — Load controller configuration from environment variables.

All settings come from the process environment (optionally seeded from a
.env file by the CLI). PROXY_IP is the only required key.

## Usage

    export PROXY_IP=10.0.0.5
    export RECONCILE_INTERVAL=60

    from cert_sync.config.loader import load_config

    config = load_config()
    print(config.remote_target)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Mapping, Optional

from ..errors import ConfigError

logger = logging.getLogger(__name__)

TRUE_VALUES = ("true", "1", "yes")


@dataclass(frozen=True)
class ControllerConfig:
    """Everything the controller needs, resolved once at startup."""

    proxy_ip: str
    remote_user: str = "cert-sync"
    remote_cert_dir: str = "/opt/traefik/certs"
    remote_config_dir: str = "/etc/traefik/config"
    ssh_key_path: Path = Path("/secrets/id_rsa")
    ssh_timeout: int = 5
    ssh_command_timeout: int = 60
    reconcile_interval: int = 30
    debug: bool = False
    skip_config_generation: bool = False
    state_dir: Path = Path("~/.cache/cert-sync").expanduser()
    metrics_port: int = 9090
    health_port: int = 8080

    @property
    def remote_target(self) -> str:
        """user@host string used by ssh and scp."""
        return f"{self.remote_user}@{self.proxy_ip}"

    @property
    def hash_store_path(self) -> Path:
        return self.state_dir / "cert_hashes.json"

    @property
    def scratch_dir(self) -> Path:
        return self.state_dir / "scratch"

    @property
    def identity_path(self) -> Path:
        return self.state_dir / "ssh" / "id_rsa"

    @property
    def known_hosts_path(self) -> Path:
        return self.state_dir / "ssh" / "known_hosts"

    def describe(self) -> List[str]:
        """Human-readable configuration lines for the startup log."""
        return [
            f"Proxy: {self.remote_target}",
            f"Remote cert dir: {self.remote_cert_dir}",
            f"Remote config dir: {self.remote_config_dir}",
            f"SSH key: {self.ssh_key_path}",
            f"SSH timeout: {self.ssh_timeout}s",
            f"Reconcile interval: {self.reconcile_interval}s",
            f"Skip config generation: {self.skip_config_generation}",
            f"State dir: {self.state_dir}",
            f"Metrics port: {self.metrics_port}",
            f"Health port: {self.health_port}",
        ]


def _parse_bool(value: Optional[str], default: bool = False) -> bool:
    if value is None or value == "":
        return default
    return value.strip().lower() in TRUE_VALUES


def _parse_positive_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{key} must be an integer, got {raw!r}")
    if value <= 0:
        raise ConfigError(f"{key} must be positive, got {value}")
    return value


def load_config(env: Optional[Mapping[str, str]] = None) -> ControllerConfig:
    """
    Build a ControllerConfig from environment variables.

    Args:
        env: Mapping to read from (defaults to os.environ)

    Returns:
        Immutable ControllerConfig

    Raises:
        ConfigError: If PROXY_IP is unset or a numeric value is invalid
    """
    if env is None:
        env = os.environ

    proxy_ip = (env.get("PROXY_IP") or "").strip()
    if not proxy_ip:
        raise ConfigError("PROXY_IP environment variable is required")

    state_dir = env.get("STATE_DIR") or "~/.cache/cert-sync"

    config = ControllerConfig(
        proxy_ip=proxy_ip,
        remote_user=env.get("REMOTE_USER") or "cert-sync",
        remote_cert_dir=(env.get("REMOTE_CERT_DIR") or "/opt/traefik/certs").rstrip("/"),
        remote_config_dir=(env.get("REMOTE_CONFIG_DIR") or "/etc/traefik/config").rstrip("/"),
        ssh_key_path=Path(env.get("SSH_KEY_PATH") or "/secrets/id_rsa"),
        ssh_timeout=_parse_positive_int(env, "SSH_TIMEOUT", 5),
        ssh_command_timeout=_parse_positive_int(env, "SSH_COMMAND_TIMEOUT", 60),
        reconcile_interval=_parse_positive_int(env, "RECONCILE_INTERVAL", 30),
        debug=_parse_bool(env.get("DEBUG")),
        skip_config_generation=_parse_bool(env.get("SKIP_CONFIG_GENERATION")),
        state_dir=Path(state_dir).expanduser(),
        metrics_port=_parse_positive_int(env, "METRICS_PORT", 9090),
        health_port=_parse_positive_int(env, "HEALTH_PORT", 8080),
    )

    logger.debug(f"Configuration loaded for {config.remote_target}")
    return config

