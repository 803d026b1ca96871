"""
Errors — The controller's failure taxonomy.

Every error carries a short ``reason`` tag. Per-source failures
(SourceDataError, ValidationError, TransferError) are caught by the
Syncer and folded into a SyncResult; ConfigError and
OrchestrationUnreachable are fatal at startup.

## Usage

    from cert_sync.errors import TransferError

    try:
        remote.copy(local, remote_path)
    except TransferError as e:
        print(f"{e.reason}: {e}")
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class CertSyncError(Exception):
    """Base class for all controller errors."""

    reason = "error"

    def __init__(self, message: str, domain: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.domain = domain
        self.details = details or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if self.domain:
            return f"{self.domain}: {self.message}"
        return self.message


class ConfigError(CertSyncError):
    """Required configuration is missing or invalid."""

    reason = "config"


class OrchestrationUnreachable(CertSyncError):
    """The Kubernetes API could not be queried."""

    reason = "orchestration"


class SourceDataError(CertSyncError):
    """Certificate or key is missing or empty in the source secret."""

    reason = "source_data"


class ValidationError(CertSyncError):
    """Decoded certificate bytes are not a structurally valid certificate."""

    reason = "validation"


class TransferError(CertSyncError):
    """Connectivity, directory creation or copy against the remote host failed."""

    reason = "transfer"


class ConfigPushError(CertSyncError):
    """The proxy configuration fragment could not be pushed."""

    reason = "config_push"
