"""
Syncer — Push one certificate source to the proxy host.

Each call to ``Syncer.sync`` runs, in order:

1. Fetch: read tls.crt / tls.key from the source secret
2. Hash & compare: skip everything below if the content hash is unchanged
3. Materialize: decode into a private scratch directory (always removed)
4. Validate: the certificate must parse as X.509
5. Transfer: mkdir, copy tls.crt / tls.key, chmod 600
6. Activate: push a Traefik dynamic config fragment (optional, non-fatal)
7. Commit: record the new hash

A failure at any step up to 5 leaves the hash store untouched, so the
next tick retries the source from scratch.

## Remote Layout

    <cert-dir>/<domain>/tls.crt     (0600)
    <cert-dir>/<domain>/tls.key     (0600)
    <config-dir>/<domain>.yml       (0644)
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import logging
import os
import posixpath
import tempfile
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional

import yaml
from cryptography import x509

from ..discovery.cluster import ClusterClient
from ..errors import (
    CertSyncError,
    ConfigPushError,
    SourceDataError,
    TransferError,
    ValidationError,
)
from ..models.certificate import CertificateSource, SyncOutcome, SyncResult
from ..persistence.hash_store import HashStore
from ..remote.ssh import RemoteHost

logger = logging.getLogger(__name__)

REMOTE_CERT_NAME = "tls.crt"
REMOTE_KEY_NAME = "tls.key"
CERT_FILE_MODE = "600"
CONFIG_FILE_MODE = "644"


def compute_content_hash(cert_b64: str, key_b64: str) -> str:
    """SHA-256 over the concatenated certificate and key payloads."""
    return hashlib.sha256(f"{cert_b64}{key_b64}".encode("utf-8")).hexdigest()


def render_proxy_config(cert_file: str, key_file: str) -> str:
    """Render the Traefik file-provider TLS block for one certificate."""
    fragment = {
        "tls": {
            "certificates": [
                {
                    "certFile": cert_file,
                    "keyFile": key_file,
                    "stores": ["default"],
                }
            ]
        }
    }
    return yaml.safe_dump(fragment, default_flow_style=False, sort_keys=False)


def validate_certificate(data: bytes) -> datetime:
    """
    Parse PEM certificate bytes.

    Returns:
        The certificate's not-after timestamp (UTC)

    Raises:
        ValidationError: If the bytes are not a PEM X.509 certificate
    """
    try:
        cert = x509.load_pem_x509_certificate(data)
    except ValueError as e:
        raise ValidationError(f"Invalid certificate format: {e}")
    return cert.not_valid_after_utc


@contextmanager
def scratch_space(parent: Path) -> Iterator[Path]:
    """
    Private scratch directory for decoded key material.

    The directory is created 0700 and removed on every exit path.
    """
    parent.mkdir(parents=True, exist_ok=True, mode=0o700)
    with tempfile.TemporaryDirectory(prefix="sync-", dir=parent) as tmpdir:
        yield Path(tmpdir)


def _write_private(path: Path, data: bytes) -> Path:
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
    with os.fdopen(fd, "wb") as f:
        f.write(data)
    return path


def _decode(payload: str, field: str, domain: str) -> bytes:
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError(f"{field} is not valid base64", domain=domain)


class Syncer:
    """Synchronizes single certificate sources onto the remote host."""

    def __init__(
        self,
        cluster: ClusterClient,
        remote: RemoteHost,
        hash_store: HashStore,
        scratch_dir: Path,
        remote_cert_dir: str,
        remote_config_dir: str,
        generate_config: bool = True,
    ):
        self.cluster = cluster
        self.remote = remote
        self.hash_store = hash_store
        self.scratch_dir = scratch_dir
        self.remote_cert_dir = remote_cert_dir
        self.remote_config_dir = remote_config_dir
        self.generate_config = generate_config

    def remote_cert_path(self, domain: str) -> str:
        return posixpath.join(self.remote_cert_dir, domain)

    def remote_config_file(self, domain: str) -> str:
        return posixpath.join(self.remote_config_dir, f"{domain}.yml")

    def sync(self, source: CertificateSource) -> SyncResult:
        """
        Run the full fetch → validate → transfer → activate → commit sequence.

        Never raises for per-source failures; they are returned as a
        FAILED SyncResult with the error's reason tag.
        """
        domain = source.domain
        log_extra = {"domain": domain, "namespace": source.namespace}
        logger.info(f"🔍 Checking {domain} (secret: {source.secret_ref})", extra=log_extra)

        try:
            cert_b64, key_b64 = self.cluster.read_tls_secret(source)
        except SourceDataError as e:
            return self._failed(source, e)

        content_hash = compute_content_hash(cert_b64, key_b64)
        logger.debug(f"Certificate hash: {content_hash[:16]}...", extra=log_extra)

        if self.hash_store.lookup(domain) == content_hash:
            logger.info(f"  ↔ {domain}: unchanged (hash: {content_hash[:8]}...)", extra=log_extra)
            return SyncResult(
                source=source,
                outcome=SyncOutcome.UNCHANGED,
                content_hash=content_hash,
            )

        logger.info(f"  📦 Syncing {domain} (hash: {content_hash[:8]}...)", extra=log_extra)

        try:
            config_pushed = self._materialize_and_transfer(source, cert_b64, key_b64)
        except (ValidationError, TransferError) as e:
            return self._failed(source, e, content_hash)

        if not self.hash_store.update(domain, content_hash):
            logger.warning(
                f"  {domain}: transferred but hash not recorded, will resync next tick",
                extra=log_extra,
            )

        logger.info(f"  ✓ {domain}: synced successfully", extra=log_extra)
        return SyncResult(
            source=source,
            outcome=SyncOutcome.TRANSFERRED,
            content_hash=content_hash,
            config_pushed=config_pushed,
        )

    def _materialize_and_transfer(
        self,
        source: CertificateSource,
        cert_b64: str,
        key_b64: str,
    ) -> Optional[bool]:
        domain = source.domain
        with scratch_space(self.scratch_dir) as scratch:
            cert_bytes = _decode(cert_b64, REMOTE_CERT_NAME, domain)
            key_bytes = _decode(key_b64, REMOTE_KEY_NAME, domain)
            cert_file = _write_private(scratch / REMOTE_CERT_NAME, cert_bytes)
            key_file = _write_private(scratch / REMOTE_KEY_NAME, key_bytes)

            expires = validate_certificate(cert_bytes)
            logger.info(f"  📅 {domain} expires: {expires.isoformat()}", extra={"domain": domain})

            remote_dir = self.remote_cert_path(domain)
            remote_cert = posixpath.join(remote_dir, REMOTE_CERT_NAME)
            remote_key = posixpath.join(remote_dir, REMOTE_KEY_NAME)

            self.remote.test_connection()
            self.remote.mkdir(remote_dir)
            self.remote.copy(cert_file, remote_cert)
            self.remote.copy(key_file, remote_key)
            self.remote.chmod(CERT_FILE_MODE, remote_cert, remote_key)

            if not self.generate_config:
                logger.debug("Skipping config generation (SKIP_CONFIG_GENERATION=true)")
                return None

            try:
                self._push_config(scratch, domain, remote_cert, remote_key)
            except ConfigPushError as e:
                logger.warning(f"  ⚠ {e} (continuing anyway)", extra={"domain": domain})
                return False
            return True

    def _push_config(self, scratch: Path, domain: str, remote_cert: str, remote_key: str) -> None:
        remote_config = self.remote_config_file(domain)
        try:
            config_file = _write_private(
                scratch / "config.yml",
                render_proxy_config(remote_cert, remote_key).encode("utf-8"),
            )
        except OSError as e:
            raise ConfigPushError(f"Failed to write config file: {e}", domain=domain)

        logger.debug(f"Copying config to {remote_config}")
        try:
            self.remote.copy(config_file, remote_config)
            self.remote.chmod(CONFIG_FILE_MODE, remote_config)
        except TransferError as e:
            raise ConfigPushError(f"Failed to push config file: {e.message}", domain=domain)

    def _failed(
        self,
        source: CertificateSource,
        error: CertSyncError,
        content_hash: Optional[str] = None,
    ) -> SyncResult:
        logger.warning(
            f"  ✗ {source.domain}: FAILED [{error.reason}] {error.message}",
            extra={"domain": source.domain, "namespace": source.namespace},
        )
        return SyncResult(
            source=source,
            outcome=SyncOutcome.FAILED,
            reason=error.reason,
            message=error.message,
            content_hash=content_hash,
        )
