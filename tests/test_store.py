"""Tests for the artifact store."""

import json

import pytest

from appbundle.errors import LockTimeoutError
from appbundle.store import (
    FINGERPRINT_SCHEMA_VERSION,
    ArtifactStore,
    backend_binary_name,
    compute_file_hash,
)


class TestBackendBinaryName:
    """Tests for backend_binary_name."""

    def test_appends_triple(self):
        assert (
            backend_binary_name("app-server", "aarch64-apple-darwin")
            == "app-server-aarch64-apple-darwin"
        )

    def test_distinct_triples_give_distinct_names(self):
        triples = [
            "x86_64-unknown-linux-gnu",
            "aarch64-unknown-linux-gnu",
            "x86_64-apple-darwin",
            "x86_64-pc-windows-msvc",
        ]
        names = {backend_binary_name("srv", t) for t in triples}
        assert len(names) == len(triples)

    @pytest.mark.parametrize("triple", ["", "   ", "linux", "x86_64 linux", "a/b-c"])
    def test_rejects_invalid_triple(self, triple):
        with pytest.raises(ValueError):
            backend_binary_name("srv", triple)


class TestArtifactStore:
    """Tests for path and existence handling."""

    def test_paths_are_relative_to_root(self, tmp_path):
        store = ArtifactStore(tmp_path)
        assert store.path("bins") == tmp_path / "bins"
        assert store.log_dir == tmp_path / ".appbundle" / "logs"

    def test_missing_preserves_order(self, tmp_path):
        (tmp_path / "b").mkdir()
        store = ArtifactStore(tmp_path)

        assert store.missing(["c", "b", "a"]) == ["c", "a"]
        assert store.is_dir("b")
        assert not store.exists("a")

    def test_compute_file_hash(self, tmp_path):
        f = tmp_path / "f.txt"
        f.write_text("hello")
        assert (
            compute_file_hash(f)
            == "2cf24dba5fb0a30e26e83b2ac5b9e29e1b161e5c1fa7425e73043362938b9824"
        )


class TestFingerprint:
    """Tests for input fingerprints and stamps."""

    def test_stable_for_same_content(self, tmp_path):
        (tmp_path / "src").mkdir()
        (tmp_path / "src" / "a.ts").write_text("a")
        store = ArtifactStore(tmp_path)

        assert store.fingerprint(["src/**/*"]) == store.fingerprint(["src/**/*"])
        assert store.fingerprint(["src/**/*"]).startswith("sha256:")

    def test_changes_on_edit_and_rename(self, tmp_path):
        (tmp_path / "src").mkdir()
        f = tmp_path / "src" / "a.ts"
        f.write_text("a")
        store = ArtifactStore(tmp_path)
        original = store.fingerprint(["src/**/*"])

        f.write_text("b")
        edited = store.fingerprint(["src/**/*"])
        f.rename(tmp_path / "src" / "b.ts")
        renamed = store.fingerprint(["src/**/*"])

        assert len({original, edited, renamed}) == 3

    def test_stamp_roundtrip(self, tmp_path):
        store = ArtifactStore(tmp_path)
        assert store.read_stamp("icon") is None

        path = store.write_stamp("icon", "sha256:abc")
        assert store.read_stamp("icon") == "sha256:abc"
        data = json.loads(path.read_text())
        assert data["schema_version"] == FINGERPRINT_SCHEMA_VERSION

    def test_unreadable_stamp_is_ignored(self, tmp_path):
        store = ArtifactStore(tmp_path)
        store.stamp_dir.mkdir(parents=True)
        store.stamp_path("icon").write_text("{not json")

        assert store.read_stamp("icon") is None


class TestLock:
    """Tests for cross-process artifact locks."""

    def test_lock_creates_lock_file(self, tmp_path):
        store = ArtifactStore(tmp_path)
        with store.lock("webui-dist"):
            assert (store.lock_dir / "webui-dist.lock").exists()

    def test_lock_timeout(self, tmp_path):
        """A held lock should time out a second acquirer."""
        store = ArtifactStore(tmp_path)
        with store.lock("icon"):
            with pytest.raises(LockTimeoutError) as exc_info:
                with store.lock("icon", timeout=0.2):
                    pass
        assert exc_info.value.code == "lock_timeout"

    def test_lock_released_after_exit(self, tmp_path):
        store = ArtifactStore(tmp_path)
        with store.lock("icon"):
            pass
        with store.lock("icon", timeout=0.2):
            pass
