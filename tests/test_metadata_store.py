"""Tests for MetadataStore — chunk metadata lookup and JSON persistence."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest

from uilint_duplicates.chunking.models import ChunkKind, ChunkMetadata
from uilint_duplicates.errors import CorruptIndexError
from uilint_duplicates.index.metadata_store import METADATA_FILE, MetadataStore
from uilint_duplicates.index.models import StoredChunkMetadata

if TYPE_CHECKING:
    from pathlib import Path


def _meta(
    file_path: str = "src/Card.tsx",
    start: int = 1,
    end: int = 10,
    kind: ChunkKind = ChunkKind.COMPONENT,
    name: str | None = "Card",
    content_hash: str = "h",
) -> StoredChunkMetadata:
    return StoredChunkMetadata(
        file_path=file_path,
        start_line=start,
        end_line=end,
        kind=kind,
        name=name,
        content_hash=content_hash,
    )


@pytest.fixture
def store() -> MetadataStore:
    ms = MetadataStore()
    ms.set("card", _meta())
    ms.set("card-section", _meta(start=4, end=8, kind=ChunkKind.JSX_SECTION))
    ms.set("hook", _meta("src/hooks.ts", 1, 6, ChunkKind.HOOK, "useToggle"))
    ms.set("util", _meta("src/hooks.ts", 8, 12, ChunkKind.FUNCTION, None, "u"))
    return ms


class TestBasics:
    def test_get_set_has(self, store: MetadataStore) -> None:
        assert store.has("card")
        assert store.get("card").name == "Card"  # type: ignore[union-attr]
        assert store.get("missing") is None
        assert len(store) == 4

    def test_ids_keep_insertion_order(self, store: MetadataStore) -> None:
        assert store.ids() == ["card", "card-section", "hook", "util"]

    def test_remove(self, store: MetadataStore) -> None:
        assert store.remove("hook") is True
        assert store.remove("hook") is False
        assert not store.has("hook")


class TestRemoveByFilePath:
    def test_returns_removed_ids(self, store: MetadataStore) -> None:
        removed = store.remove_by_file_path("src/hooks.ts")
        assert removed == ["hook", "util"]
        for chunk_id in removed:
            assert store.get(chunk_id) is None
        assert store.file_paths() == {"src/Card.tsx"}

    def test_unknown_path(self, store: MetadataStore) -> None:
        assert store.remove_by_file_path("nope.ts") == []
        assert len(store) == 4


class TestGetAtLocation:
    def test_smallest_containing_span(self, store: MetadataStore) -> None:
        found = store.get_at_location("src/Card.tsx", 5)
        assert found is not None
        assert found[0] == "card-section"

    def test_outer_chunk_outside_inner_span(self, store: MetadataStore) -> None:
        found = store.get_at_location("src/Card.tsx", 9)
        assert found is not None
        assert found[0] == "card"

    def test_boundaries_inclusive(self, store: MetadataStore) -> None:
        assert store.get_at_location("src/hooks.ts", 6)[0] == "hook"  # type: ignore[index]
        assert store.get_at_location("src/hooks.ts", 8)[0] == "util"  # type: ignore[index]

    def test_equal_spans_first_inserted_wins(self) -> None:
        ms = MetadataStore()
        ms.set("first", _meta(start=2, end=5))
        ms.set("second", _meta(start=2, end=5))
        assert ms.get_at_location("src/Card.tsx", 3)[0] == "first"  # type: ignore[index]

    def test_no_chunk(self, store: MetadataStore) -> None:
        assert store.get_at_location("src/hooks.ts", 7) is None
        assert store.get_at_location("src/Other.tsx", 1) is None


class TestQueries:
    def test_filter_by_kind(self, store: MetadataStore) -> None:
        assert [cid for cid, _ in store.filter_by_kind(ChunkKind.HOOK)] == ["hook"]

    def test_search_by_name_case_insensitive(self, store: MetadataStore) -> None:
        assert [cid for cid, _ in store.search_by_name("toggle")] == ["hook"]
        assert [cid for cid, _ in store.search_by_name("CARD")] == ["card", "card-section"]

    def test_get_by_file_path(self, store: MetadataStore) -> None:
        assert [cid for cid, _ in store.get_by_file_path("src/hooks.ts")] == ["hook", "util"]

    def test_get_by_content_hash(self, store: MetadataStore) -> None:
        assert [cid for cid, _ in store.get_by_content_hash("u")] == ["util"]


class TestPersistence:
    def test_roundtrip(self, store: MetadataStore, tmp_path: Path) -> None:
        store.set(
            "rich",
            StoredChunkMetadata(
                file_path="src/List.tsx",
                start_line=3,
                end_line=30,
                start_column=2,
                end_column=1,
                kind=ChunkKind.JSX_SECTION,
                name="List",
                content_hash="abc",
                metadata=ChunkMetadata(jsx_elements=["ul", "li"], hooks=["useMemo"], is_exported=True),
                parent_id="parent",
                section_index=1,
                section_label="<ul>",
            ),
        )
        store.save(tmp_path)

        loaded = MetadataStore()
        loaded.load(tmp_path)
        assert loaded.ids() == store.ids()
        for chunk_id, meta in store.entries():
            assert loaded.get(chunk_id) == meta

    def test_on_disk_format_is_camel_case(self, store: MetadataStore, tmp_path: Path) -> None:
        store.save(tmp_path)
        raw = json.loads((tmp_path / METADATA_FILE).read_text())
        assert raw["version"] == 1
        record = raw["chunks"]["card"]
        assert record["filePath"] == "src/Card.tsx"
        assert record["startLine"] == 1
        assert record["kind"] == "component"
        assert "isExported" in record["metadata"]

    def test_wrong_version_rejected(self, tmp_path: Path) -> None:
        (tmp_path / METADATA_FILE).write_text(json.dumps({"version": 99, "chunks": {}}))
        with pytest.raises(CorruptIndexError):
            MetadataStore().load(tmp_path)

    def test_invalid_record_rejected(self, tmp_path: Path) -> None:
        payload = {"version": 1, "chunks": {"x": {"filePath": "a.ts", "kind": "widget"}}}
        (tmp_path / METADATA_FILE).write_text(json.dumps(payload))
        with pytest.raises(CorruptIndexError):
            MetadataStore().load(tmp_path)

    def test_unparsable_rejected(self, tmp_path: Path) -> None:
        (tmp_path / METADATA_FILE).write_text("{not json")
        with pytest.raises(CorruptIndexError):
            MetadataStore().load(tmp_path)
