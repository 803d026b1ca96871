"""
Certificate Models — Sources discovered each tick and the outcome of syncing them.

A CertificateSource is produced fresh by discovery on every tick and is
never persisted. A SyncResult is the transient outcome of one Syncer
invocation; it only survives as a contribution to the aggregate counters.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict

SourceOrigin = Literal["ingress", "certificate"]


class CertificateSource(BaseModel):
    """Where a certificate lives in the cluster and which domain it serves."""

    model_config = ConfigDict(frozen=True)

    namespace: str
    secret_name: str
    domain: str
    origin: SourceOrigin = "ingress"

    @property
    def secret_ref(self) -> str:
        return f"{self.namespace}/{self.secret_name}"


class SyncOutcome(str, Enum):
    """How a single sync attempt ended."""

    UNCHANGED = "unchanged"
    TRANSFERRED = "transferred"
    FAILED = "failed"


@dataclass
class SyncResult:
    """Result of syncing one certificate source."""

    source: CertificateSource
    outcome: SyncOutcome
    reason: Optional[str] = None
    message: str = ""
    content_hash: Optional[str] = None
    config_pushed: Optional[bool] = None

    @property
    def ok(self) -> bool:
        return self.outcome != SyncOutcome.FAILED

    @property
    def domain(self) -> str:
        return self.source.domain
