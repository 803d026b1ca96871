"""
Tests for the hash store — lookup, atomic update, reload.
"""

import json
from pathlib import Path
from unittest.mock import patch

from cert_sync.persistence.hash_store import HashStore


class TestHashStore:
    """Tests for HashStore."""

    def test_lookup_missing_domain(self, tmp_path: Path):
        """Unknown domains have no hash."""
        store = HashStore(tmp_path / "hashes.json")

        assert store.lookup("example.com") is None
        assert len(store) == 0

    def test_update_then_lookup(self, tmp_path: Path):
        """Updated hashes are returned by lookup."""
        store = HashStore(tmp_path / "hashes.json")

        assert store.update("example.com", "abc123") is True

        assert store.lookup("example.com") == "abc123"

    def test_update_overwrites_single_record(self, tmp_path: Path):
        """A domain never has more than one record."""
        store = HashStore(tmp_path / "hashes.json")

        store.update("example.com", "first")
        store.update("example.com", "second")

        assert store.lookup("example.com") == "second"
        assert store.snapshot() == {"example.com": "second"}

    def test_persists_across_instances(self, tmp_path: Path):
        """A new store over the same file sees earlier updates."""
        path = tmp_path / "hashes.json"
        HashStore(path).update("example.com", "abc123")

        reloaded = HashStore(path)

        assert reloaded.lookup("example.com") == "abc123"

    def test_creates_parent_directory(self, tmp_path: Path):
        """The table's directory is created on first write."""
        path = tmp_path / "nested" / "dir" / "hashes.json"
        store = HashStore(path)

        store.update("example.com", "abc123")

        assert path.exists()
        assert json.loads(path.read_text()) == {"example.com": "abc123"}

    def test_file_is_owner_only(self, tmp_path: Path):
        """The table is written with 0600 permissions."""
        path = tmp_path / "hashes.json"
        HashStore(path).update("example.com", "abc123")

        assert (path.stat().st_mode & 0o777) == 0o600

    def test_no_temp_file_left_behind(self, tmp_path: Path):
        """The temp file is renamed into place."""
        path = tmp_path / "hashes.json"
        HashStore(path).update("example.com", "abc123")

        assert not path.with_suffix(".tmp").exists()

    def test_failed_replace_keeps_previous_table(self, tmp_path: Path):
        """If the atomic replace fails, neither disk nor memory changes."""
        path = tmp_path / "hashes.json"
        store = HashStore(path)
        store.update("example.com", "old")

        with patch("cert_sync.persistence.hash_store.os.replace", side_effect=OSError("disk full")):
            assert store.update("example.com", "new") is False

        assert store.lookup("example.com") == "old"
        assert json.loads(path.read_text()) == {"example.com": "old"}
        assert not path.with_suffix(".tmp").exists()

    def test_corrupt_file_starts_empty(self, tmp_path: Path):
        """An unreadable table is treated as empty (full resync)."""
        path = tmp_path / "hashes.json"
        path.write_text("not json{")

        store = HashStore(path)

        assert store.lookup("example.com") is None

    def test_non_mapping_file_starts_empty(self, tmp_path: Path):
        """A table that is not a JSON object is ignored."""
        path = tmp_path / "hashes.json"
        path.write_text(json.dumps(["example.com"]))

        assert len(HashStore(path)) == 0

    def test_snapshot_is_a_copy(self, tmp_path: Path):
        """Mutating a snapshot does not affect the store."""
        store = HashStore(tmp_path / "hashes.json")
        store.update("example.com", "abc123")

        snap = store.snapshot()
        snap["example.com"] = "tampered"

        assert store.lookup("example.com") == "abc123"

    def test_failed_fsync_keeps_previous_table(self, tmp_path: Path):
        """The table is only replaced after its contents reach disk."""
        path = tmp_path / "hashes.json"
        store = HashStore(path)
        store.update("example.com", "old")

        with patch("cert_sync.persistence.hash_store.os.fsync", side_effect=OSError("I/O error")) as fsync:
            assert store.update("example.com", "new") is False

        fsync.assert_called_once()
        assert store.lookup("example.com") == "old"
        assert json.loads(path.read_text()) == {"example.com": "old"}
        assert not path.with_suffix(".tmp").exists()
