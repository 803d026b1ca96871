"""
Hash Store — Domain → content-hash table used for change detection.

The table lives in a single JSON file inside the controller's private
state directory. Every update rewrites the whole table to a temp file and
atomically replaces the original, so a crash never leaves a half-written
table behind.

The store does not survive a restart unless the state directory is on
persistent storage; after a restart every certificate is re-synced once.

## Usage

    from cert_sync.persistence.hash_store import HashStore

    store = HashStore(Path("~/.cache/cert-sync/cert_hashes.json").expanduser())
    if store.lookup("example.com") != current_hash:
        ...
        store.update("example.com", current_hash)
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Dict, Optional

logger = logging.getLogger(__name__)


class HashStore:
    """
    Persistent key-value mapping of domain to content hash.

    At most one record per domain. Only the Syncer writes, and only
    after a successful transfer.
    """

    def __init__(self, path: Path):
        self.path = path
        self._hashes: Dict[str, str] = self._load()

    def _load(self) -> Dict[str, str]:
        """Load the table from disk, starting empty if absent or unreadable."""
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Hash store unreadable, starting empty: {e}")
            return {}
        if not isinstance(data, dict):
            logger.warning("Hash store has unexpected format, starting empty")
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def lookup(self, domain: str) -> Optional[str]:
        """Return the stored hash for a domain, or None."""
        return self._hashes.get(domain)

    def update(self, domain: str, content_hash: str) -> bool:
        """
        Record a new hash for a domain.

        Writes the full table to a temp file and atomically replaces the
        original. The in-memory table only changes if the write succeeds.

        Returns:
            True on success, False if the table could not be written
        """
        updated = dict(self._hashes)
        updated[domain] = content_hash

        temp_path = self.path.with_suffix(".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(temp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(updated, f, indent=2, sort_keys=True)
                f.write("\n")
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, self.path)
        except OSError as e:
            logger.error(f"Failed to update hash store for {domain}: {e}")
            temp_path.unlink(missing_ok=True)
            return False

        self._hashes = updated
        logger.debug(f"Hash store updated: {domain} → {content_hash[:8]}...")
        return True

    def snapshot(self) -> Dict[str, str]:
        """Copy of the current table."""
        return dict(self._hashes)

    def __len__(self) -> int:
        return len(self._hashes)
