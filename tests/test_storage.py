"""Tests for artifact, hash and threshold persistence."""

from pathlib import Path

from wikidelta.interfaces import ArtifactStore
from wikidelta.models import Artifact, SymbolSnapshot
from wikidelta.storage import SQLiteArtifactStore, load_threshold, save_threshold
from wikidelta.threshold import AdaptiveThreshold, ThresholdConfig


def _snapshot(name: str, deps=None) -> SymbolSnapshot:
    return SymbolSnapshot(
        id=f"a.py:{name}:class",
        name=name,
        kind="class",
        signature=f"class {name}",
        description="",
        hash="0" * 16,
        file_path="a.py",
        start_line=1,
        end_line=3,
        dependencies=deps or [],
        exported=True,
    )


class TestArtifacts:
    """Tests for artifact CRUD."""

    def test_satisfies_protocol(self, artifact_store: SQLiteArtifactStore):
        assert isinstance(artifact_store, ArtifactStore)

    def test_save_and_load(self, artifact_store: SQLiteArtifactStore):
        artifact_store.save(Artifact(
            artifact_id="module-shop",
            title="Module: shop",
            content="edited",
            base_content="generated",
            source_files=["src/shop/models.py"],
        ))

        loaded = artifact_store.load("module-shop")
        assert loaded.content == "edited"
        assert loaded.base_content == "generated"
        assert loaded.source_files == ["src/shop/models.py"]
        assert loaded.updated_at

    def test_save_replaces(self, artifact_store: SQLiteArtifactStore):
        artifact_store.save(Artifact(artifact_id="x", title="X", content="one"))
        artifact_store.save(Artifact(artifact_id="x", title="X", content="two"))

        assert artifact_store.load("x").content == "two"
        assert artifact_store.list() == ["x"]

    def test_list_and_delete(self, artifact_store: SQLiteArtifactStore):
        for artifact_id in ("b", "a"):
            artifact_store.save(Artifact(artifact_id=artifact_id, title=artifact_id, content=""))

        assert artifact_store.list() == ["a", "b"]
        assert artifact_store.delete("a") is True
        assert artifact_store.delete("a") is False
        assert artifact_store.load("a") is None

    def test_persists_across_connections(self, temp_dir: Path):
        db_path = temp_dir / "nested" / "store.db"
        with SQLiteArtifactStore(db_path) as store:
            store.save(Artifact(artifact_id="x", title="X", content="kept"))

        with SQLiteArtifactStore(db_path) as store:
            assert store.load("x").content == "kept"

    def test_default_location(self, wikidelta_home: Path):
        """Without a path the store lives under the wikidelta state directory."""
        with SQLiteArtifactStore() as store:
            assert store.db_path == wikidelta_home / "state" / "artifacts.db"


class TestSyncState:
    """Tests for file hashes, key/value state and symbol snapshots."""

    def test_file_hashes(self, artifact_store: SQLiteArtifactStore):
        artifact_store.set_file_hash("a.py", "111")
        artifact_store.set_file_hash("b.py", "222")
        artifact_store.set_file_hash("a.py", None)

        assert artifact_store.get_file_hashes() == {"b.py": "222"}

    def test_state(self, artifact_store: SQLiteArtifactStore):
        assert artifact_store.get_state("last_revision") is None
        artifact_store.set_state("last_revision", "abc123")
        assert artifact_store.get_state("last_revision") == "abc123"

    def test_symbols_round_trip(self, artifact_store: SQLiteArtifactStore):
        snapshots = {s.id: s for s in (_snapshot("Foo"), _snapshot("Bar", ["Foo"]))}
        artifact_store.save_symbols(snapshots)

        restored = artifact_store.load_symbols()
        assert restored == snapshots

    def test_corrupt_symbols_start_empty(self, artifact_store: SQLiteArtifactStore):
        artifact_store.set_state("symbols", "{not json")
        assert artifact_store.load_symbols() == {}


class TestThresholdHistory:
    """Tests for the JSON threshold history."""

    def test_missing_file_gives_empty_controller(self, temp_dir: Path):
        controller = load_threshold(temp_dir / "missing.json")
        assert controller.history == ()

    def test_save_and_load(self, temp_dir: Path):
        path = temp_dir / "history.json"
        controller = AdaptiveThreshold()
        controller.record_result(30, 10.0, True, True, 50.0)
        save_threshold(controller, path)

        restored = load_threshold(path)
        assert restored.history == controller.history

    def test_config_override(self, temp_dir: Path):
        path = temp_dir / "history.json"
        save_threshold(AdaptiveThreshold(), path)

        restored = load_threshold(path, ThresholdConfig(window_size=3))
        assert restored.config.window_size == 3

    def test_corrupt_file_is_ignored(self, temp_dir: Path):
        path = temp_dir / "history.json"
        path.write_text("[[[", encoding="utf-8")

        assert load_threshold(path).history == ()

    def test_default_path(self, wikidelta_home: Path):
        controller = AdaptiveThreshold()
        controller.record_result(10, 5.0, True, True, 1.0)
        save_threshold(controller)

        assert (wikidelta_home / "state" / "threshold_history.json").exists()
        assert len(load_threshold().history) == 1
