"""Tests for FileTracker — content-hash change detection."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest

from uilint_duplicates.index.file_tracker import HASHES_FILE, FileTracker, content_hash
from uilint_duplicates.index.models import ChangeType

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture
def project(tmp_path: Path) -> Path:
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "a.tsx").write_text("export const A = 1;\n")
    (tmp_path / "src" / "b.ts").write_text("export const b = 2;\n")
    return tmp_path


def _track_all(tracker: FileTracker, *paths: Path) -> None:
    for path in paths:
        tracker.update_file(path, path.read_text(), [f"{path.name}-chunk"])


class TestContentHash:
    def test_deterministic(self) -> None:
        assert content_hash("hello") == content_hash("hello")

    def test_str_and_bytes_agree(self) -> None:
        assert content_hash("héllo") == content_hash("héllo".encode())

    def test_64_bit_hex(self) -> None:
        assert len(content_hash("x")) == 16


class TestDetectChanges:
    def test_new_files_are_added(self, project: Path) -> None:
        tracker = FileTracker(project)
        changes = tracker.detect_changes([project / "src" / "a.tsx", project / "src" / "b.ts"])
        assert [(c.path, c.change_type) for c in changes] == [
            ("src/a.tsx", ChangeType.ADDED),
            ("src/b.ts", ChangeType.ADDED),
        ]
        assert changes[0].new_hash == content_hash("export const A = 1;\n")

    def test_unchanged_files_produce_no_events(self, project: Path) -> None:
        tracker = FileTracker(project)
        a, b = project / "src" / "a.tsx", project / "src" / "b.ts"
        _track_all(tracker, a, b)
        assert tracker.detect_changes([a, b]) == []

    def test_touch_without_edit_is_not_a_change(self, project: Path) -> None:
        tracker = FileTracker(project)
        a = project / "src" / "a.tsx"
        _track_all(tracker, a)
        a.write_text(a.read_text())
        assert tracker.detect_changes([a]) == []

    def test_modified(self, project: Path) -> None:
        tracker = FileTracker(project)
        a = project / "src" / "a.tsx"
        _track_all(tracker, a)
        a.write_text("export const A = 2;\n")
        changes = tracker.detect_changes([a])
        assert len(changes) == 1
        assert changes[0].change_type == ChangeType.MODIFIED
        assert changes[0].old_hash != changes[0].new_hash

    def test_missing_from_candidates_is_deleted(self, project: Path) -> None:
        tracker = FileTracker(project)
        a, b = project / "src" / "a.tsx", project / "src" / "b.ts"
        _track_all(tracker, a, b)
        changes = tracker.detect_changes([a])
        assert [(c.path, c.change_type) for c in changes] == [("src/b.ts", ChangeType.DELETED)]

    def test_unreadable_tracked_file_is_deleted(self, project: Path) -> None:
        tracker = FileTracker(project)
        a = project / "src" / "a.tsx"
        _track_all(tracker, a)
        a.unlink()
        changes = tracker.detect_changes([a])
        assert [(c.path, c.change_type) for c in changes] == [("src/a.tsx", ChangeType.DELETED)]

    def test_unreadable_untracked_file_is_ignored(self, project: Path) -> None:
        tracker = FileTracker(project)
        assert tracker.detect_changes([project / "src" / "ghost.tsx"]) == []

    def test_deletions_reported_first(self, project: Path) -> None:
        tracker = FileTracker(project)
        b = project / "src" / "b.ts"
        _track_all(tracker, b)
        changes = tracker.detect_changes([project / "src" / "a.tsx"])
        assert [c.change_type for c in changes] == [ChangeType.DELETED, ChangeType.ADDED]

    def test_relative_and_absolute_paths_agree(self, project: Path) -> None:
        tracker = FileTracker(project)
        tracker.update_file("src/a.tsx", (project / "src" / "a.tsx").read_text(), [])
        assert tracker.detect_changes([project / "src" / "a.tsx"]) == []


class TestEntries:
    def test_update_records_chunks_and_mtime(self, project: Path) -> None:
        tracker = FileTracker(project)
        a = project / "src" / "a.tsx"
        tracker.update_file(a, a.read_text(), ["x", "y"])
        entry = tracker.get_entry(a)
        assert entry is not None
        assert entry.chunk_ids == ["x", "y"]
        assert entry.mtime == pytest.approx(a.stat().st_mtime)
        assert tracker.tracked_files() == ["src/a.tsx"]

    def test_all_chunk_ids(self, project: Path) -> None:
        tracker = FileTracker(project)
        _track_all(tracker, project / "src" / "a.tsx", project / "src" / "b.ts")
        assert tracker.all_chunk_ids() == {"a.tsx-chunk", "b.ts-chunk"}

    def test_remove_entry(self, project: Path) -> None:
        tracker = FileTracker(project)
        _track_all(tracker, project / "src" / "a.tsx")
        assert tracker.remove_entry("src/a.tsx") is not None
        assert tracker.remove_entry("src/a.tsx") is None
        assert len(tracker) == 0


class TestPersistence:
    def test_roundtrip(self, project: Path, tmp_path: Path) -> None:
        tracker = FileTracker(project)
        _track_all(tracker, project / "src" / "a.tsx", project / "src" / "b.ts")
        index_dir = tmp_path / "idx"
        tracker.save(index_dir)

        raw = json.loads((index_dir / HASHES_FILE).read_text())
        assert raw["version"] == 1
        assert set(raw["files"]["src/a.tsx"]) == {"contentHash", "mtime", "chunkIds"}

        loaded = FileTracker(project)
        loaded.load(index_dir)
        assert loaded.tracked_files() == tracker.tracked_files()
        assert loaded.get_entry("src/a.tsx") == tracker.get_entry("src/a.tsx")

    def test_version_mismatch_resets(self, project: Path, tmp_path: Path) -> None:
        (tmp_path / HASHES_FILE).write_text(json.dumps({"version": 2, "files": {}}))
        tracker = FileTracker(project)
        _track_all(tracker, project / "src" / "a.tsx")
        tracker.load(tmp_path)
        assert len(tracker) == 0

    def test_garbage_resets(self, project: Path, tmp_path: Path) -> None:
        (tmp_path / HASHES_FILE).write_text("]]]")
        tracker = FileTracker(project)
        tracker.load(tmp_path)
        assert len(tracker) == 0

    def test_missing_file_is_empty(self, project: Path, tmp_path: Path) -> None:
        tracker = FileTracker(project)
        tracker.load(tmp_path / "nowhere")
        assert len(tracker) == 0
