"""
SSH Remote — Run commands and copy files on the proxy host.

Wraps the OpenSSH ``ssh``, ``scp`` and ``ssh-keyscan`` binaries. Every
call runs in batch mode with an explicit connect timeout, and the whole
subprocess is additionally bounded by ``command_timeout`` so a wedged
connection can never hang the reconcile loop.

Failures raise TransferError carrying the tool's stderr.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from pathlib import Path
from typing import Callable, List

from ..errors import TransferError

logger = logging.getLogger(__name__)


class RemoteHost:
    """A single remote target reachable over SSH."""

    def __init__(
        self,
        host: str,
        user: str,
        identity_path: Path,
        known_hosts_path: Path,
        connect_timeout: int = 5,
        command_timeout: int = 60,
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
    ):
        self.host = host
        self.user = user
        self.identity_path = identity_path
        self.known_hosts_path = known_hosts_path
        self.connect_timeout = connect_timeout
        self.command_timeout = command_timeout
        self._runner = runner

    @property
    def target(self) -> str:
        return f"{self.user}@{self.host}"

    def _options(self) -> List[str]:
        return [
            "-i", str(self.identity_path),
            "-o", f"ConnectTimeout={self.connect_timeout}",
            "-o", "BatchMode=yes",
            "-o", f"UserKnownHostsFile={self.known_hosts_path}",
            "-o", "StrictHostKeyChecking=accept-new",
        ]

    def _exec(self, cmd: List[str], action: str) -> subprocess.CompletedProcess:
        logger.debug(f"[ssh] {action}")
        try:
            result = self._runner(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.command_timeout,
            )
        except subprocess.TimeoutExpired:
            raise TransferError(
                f"{action} timed out after {self.command_timeout}s",
                details={"host": self.host},
            )
        except OSError as e:
            raise TransferError(f"{action} could not start: {e}", details={"host": self.host})

        if result.returncode != 0:
            error = (result.stderr or result.stdout or "").strip() or f"exit code {result.returncode}"
            raise TransferError(f"{action} failed: {error}", details={"host": self.host})
        return result

    # ------------------------------------------------------------------
    # Remote operations
    # ------------------------------------------------------------------

    def run(self, command: str, action: str = "") -> subprocess.CompletedProcess:
        """Run a shell command on the remote host."""
        cmd = ["ssh", *self._options(), self.target, command]
        return self._exec(cmd, action or f"ssh {command}")

    def test_connection(self) -> None:
        """Open a connection and run a no-op."""
        self.run("echo 'SSH OK'", action=f"Connect to {self.target}")

    def mkdir(self, path: str) -> None:
        self.run(f"mkdir -p {shlex.quote(path)}", action=f"Create directory {path}")

    def copy(self, local_path: Path, remote_path: str) -> None:
        """Copy a local file to a path on the remote host."""
        cmd = ["scp", *self._options(), str(local_path), f"{self.target}:{remote_path}"]
        self._exec(cmd, f"Copy to {remote_path}")

    def chmod(self, mode: str, *paths: str) -> None:
        quoted = " ".join(shlex.quote(p) for p in paths)
        self.run(f"chmod {mode} {quoted}", action=f"chmod {mode} {' '.join(paths)}")

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def add_to_known_hosts(self) -> bool:
        """
        Append the host's public keys to the private known-hosts file.

        Returns:
            True if keys were recorded
        """
        cmd = ["ssh-keyscan", "-T", str(self.connect_timeout), "-H", self.host]
        try:
            result = self._runner(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.command_timeout,
            )
        except (subprocess.TimeoutExpired, OSError) as e:
            logger.debug(f"ssh-keyscan failed: {e}")
            return False

        if result.returncode != 0 or not result.stdout.strip():
            logger.debug(f"ssh-keyscan returned nothing: {result.stderr.strip()}")
            return False

        self.known_hosts_path.parent.mkdir(parents=True, exist_ok=True)
        with self.known_hosts_path.open("a", encoding="utf-8") as f:
            f.write(result.stdout)
            if not result.stdout.endswith("\n"):
                f.write("\n")
        return True
