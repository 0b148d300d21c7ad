"""Tests for VectorStore — float32 vector storage, cosine search, binary persistence."""

from __future__ import annotations

import json
import math
import struct
from typing import TYPE_CHECKING

import numpy as np
import pytest

from uilint_duplicates.errors import CorruptIndexError, DimensionMismatchError
from uilint_duplicates.index.vector_store import (
    EMBEDDINGS_FILE,
    IDS_FILE,
    VectorStore,
    cosine_similarity,
    payload_digest,
)

if TYPE_CHECKING:
    from pathlib import Path


def _unit(degrees: float) -> list[float]:
    rad = math.radians(degrees)
    return [math.cos(rad), math.sin(rad)]


@pytest.fixture
def store() -> VectorStore:
    vs = VectorStore()
    vs.add("a", [1.0, 0.0, 0.0])
    vs.add("b", [0.0, 1.0, 0.0])
    vs.add("c", [1.0, 1.0, 0.0])
    return vs


# ---------------------------------------------------------------------------
# Tests: add / get / remove
# ---------------------------------------------------------------------------


class TestAdd:
    def test_first_add_fixes_dimension(self) -> None:
        vs = VectorStore()
        assert vs.dimension is None
        vs.add("x", [0.5, 0.5])
        assert vs.dimension == 2

    def test_get_returns_float32_copy(self, store: VectorStore) -> None:
        vec = store.get("a")
        assert vec is not None
        assert vec.dtype == np.float32
        vec[0] = 99.0
        assert store.get("a")[0] == 1.0  # type: ignore[index]

    def test_get_missing(self, store: VectorStore) -> None:
        assert store.get("zzz") is None
        assert not store.has("zzz")

    def test_dimension_mismatch_leaves_store_unchanged(self, store: VectorStore) -> None:
        before = store.to_bytes()
        with pytest.raises(DimensionMismatchError) as exc_info:
            store.add("d", [1.0, 2.0])
        assert exc_info.value.expected == 3
        assert exc_info.value.actual == 2
        assert store.to_bytes() == before
        assert store.ids() == ["a", "b", "c"]

    def test_dimension_mismatch_is_value_error(self, store: VectorStore) -> None:
        with pytest.raises(ValueError):
            store.add("d", [1.0, 2.0, 3.0, 4.0])

    def test_batch_with_bad_vector_stores_nothing(self, store: VectorStore) -> None:
        with pytest.raises(DimensionMismatchError):
            store.add_batch([("d", [0.0, 0.0, 1.0]), ("e", [1.0])])
        assert not store.has("d")
        assert len(store) == 3

    def test_batch_on_empty_store_checks_internal_consistency(self) -> None:
        vs = VectorStore()
        with pytest.raises(DimensionMismatchError):
            vs.add_batch([("d", [0.0, 1.0]), ("e", [1.0, 0.0, 0.0])])
        assert len(vs) == 0
        assert vs.dimension is None

    def test_readd_overwrites_in_place(self, store: VectorStore) -> None:
        store.add("a", [0.0, 0.0, 1.0])
        assert store.ids() == ["a", "b", "c"]
        assert store.get("a").tolist() == [0.0, 0.0, 1.0]  # type: ignore[union-attr]
        assert len(store) == 3

    def test_empty_vector_rejected(self) -> None:
        with pytest.raises(ValueError):
            VectorStore().add("x", [])


class TestRemove:
    def test_remove_compacts(self, store: VectorStore) -> None:
        assert store.remove("b") is True
        assert store.ids() == ["a", "c"]
        assert store.position("c") == 1
        assert store.get("c").tolist() == [1.0, 1.0, 0.0]  # type: ignore[union-attr]
        assert len(store.to_bytes()) == 8 + 2 * 3 * 4

    def test_remove_missing(self, store: VectorStore) -> None:
        assert store.remove("zzz") is False
        assert len(store) == 3

    def test_removed_id_not_searchable(self, store: VectorStore) -> None:
        store.remove("a")
        ids = [r.id for r in store.find_similar([1.0, 0.0, 0.0], k=10)]
        assert "a" not in ids

    def test_clear(self, store: VectorStore) -> None:
        store.clear()
        assert len(store) == 0
        assert store.dimension is None


# ---------------------------------------------------------------------------
# Tests: similarity
# ---------------------------------------------------------------------------


class TestCosine:
    def test_identical(self) -> None:
        assert cosine_similarity([1.0, 2.0], [2.0, 4.0]) == pytest.approx(1.0)

    def test_orthogonal(self) -> None:
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)

    def test_zero_vector_scores_zero(self) -> None:
        assert cosine_similarity([0.0, 0.0], [1.0, 0.0]) == 0.0

    def test_length_mismatch(self) -> None:
        with pytest.raises(DimensionMismatchError):
            cosine_similarity([1.0], [1.0, 0.0])


class TestFindSimilar:
    def test_sorted_descending(self, store: VectorStore) -> None:
        results = store.find_similar([1.0, 0.2, 0.0], k=3)
        assert [r.id for r in results] == ["a", "c", "b"]
        scores = [r.score for r in results]
        assert scores == sorted(scores, reverse=True)

    def test_k_limits_results(self, store: VectorStore) -> None:
        assert len(store.find_similar([1.0, 0.0, 0.0], k=1)) == 1

    def test_threshold(self, store: VectorStore) -> None:
        results = store.find_similar([1.0, 0.0, 0.0], k=10, threshold=0.5)
        assert [r.id for r in results] == ["a", "c"]

    def test_exclude(self, store: VectorStore) -> None:
        results = store.find_similar([1.0, 0.0, 0.0], k=10, exclude={"a"})
        assert "a" not in [r.id for r in results]

    def test_ties_keep_insertion_order(self) -> None:
        vs = VectorStore()
        vs.add("first", [1.0, 0.0])
        vs.add("other", [0.0, 1.0])
        vs.add("second", [1.0, 0.0])
        results = vs.find_similar([1.0, 0.0], k=2)
        assert [r.id for r in results] == ["first", "second"]

    def test_zero_stored_vector_scores_zero(self) -> None:
        vs = VectorStore()
        vs.add("zero", [0.0, 0.0])
        vs.add("one", [1.0, 0.0])
        results = vs.find_similar([1.0, 0.0], k=2)
        assert results[1].id == "zero"
        assert results[1].score == 0.0

    def test_distance(self, store: VectorStore) -> None:
        top = store.find_similar([1.0, 0.0, 0.0], k=1)[0]
        assert top.distance == pytest.approx(0.0, abs=1e-6)

    def test_empty_store(self) -> None:
        assert VectorStore().find_similar([1.0, 0.0]) == []

    def test_query_dimension_checked(self, store: VectorStore) -> None:
        with pytest.raises(DimensionMismatchError):
            store.find_similar([1.0, 0.0])

    def test_similarity_between_ids(self) -> None:
        vs = VectorStore()
        vs.add("x", _unit(0))
        vs.add("y", _unit(60))
        assert vs.similarity("x", "y") == pytest.approx(0.5, abs=1e-6)


# ---------------------------------------------------------------------------
# Tests: persistence
# ---------------------------------------------------------------------------


class TestPersistence:
    def test_roundtrip_is_bit_identical(self, store: VectorStore, tmp_path: Path) -> None:
        store.add("d", [0.1, -0.2, 0.3])
        store.save(tmp_path)

        loaded = VectorStore()
        loaded.load(tmp_path)

        assert loaded.dimension == store.dimension
        assert loaded.ids() == store.ids()
        for chunk_id in store.ids():
            assert loaded.get(chunk_id).tobytes() == store.get(chunk_id).tobytes()  # type: ignore[union-attr]

    def test_file_layout(self, store: VectorStore, tmp_path: Path) -> None:
        store.save(tmp_path)
        data = (tmp_path / EMBEDDINGS_FILE).read_bytes()
        assert struct.unpack_from("<II", data) == (3, 3)
        assert len(data) == 8 + 3 * 3 * 4
        assert struct.unpack_from("<3f", data, 8) == (1.0, 0.0, 0.0)
        ids = json.loads((tmp_path / IDS_FILE).read_text())
        assert ids == {"digest": payload_digest(data), "ids": ["a", "b", "c"]}

    def test_empty_store_roundtrip(self, tmp_path: Path) -> None:
        VectorStore().save(tmp_path)
        assert (tmp_path / EMBEDDINGS_FILE).read_bytes() == struct.pack("<II", 0, 0)

        loaded = VectorStore()
        loaded.load(tmp_path)
        assert len(loaded) == 0
        assert loaded.dimension is None

    def test_no_temp_files_left(self, store: VectorStore, tmp_path: Path) -> None:
        store.save(tmp_path)
        assert sorted(p.name for p in tmp_path.iterdir()) == [EMBEDDINGS_FILE, IDS_FILE]

    def test_truncated_payload_rejected(self, store: VectorStore, tmp_path: Path) -> None:
        store.save(tmp_path)
        path = tmp_path / EMBEDDINGS_FILE
        path.write_bytes(path.read_bytes()[:-4])

        target = VectorStore()
        target.add("keep", [1.0])
        with pytest.raises(CorruptIndexError):
            target.load(tmp_path)
        assert target.ids() == ["keep"]

    def test_short_header_rejected(self, tmp_path: Path) -> None:
        (tmp_path / EMBEDDINGS_FILE).write_bytes(b"\x01\x00")
        (tmp_path / IDS_FILE).write_text(json.dumps({"digest": payload_digest(b"\x01\x00"), "ids": []}))
        with pytest.raises(CorruptIndexError):
            VectorStore().load(tmp_path)

    def test_id_count_mismatch_rejected(self, store: VectorStore, tmp_path: Path) -> None:
        store.save(tmp_path)
        digest = payload_digest((tmp_path / EMBEDDINGS_FILE).read_bytes())
        (tmp_path / IDS_FILE).write_text(json.dumps({"digest": digest, "ids": ["a", "b"]}))
        with pytest.raises(CorruptIndexError):
            VectorStore().load(tmp_path)

    def test_ids_from_another_save_rejected(self, store: VectorStore, tmp_path: Path) -> None:
        old_dir = tmp_path / "old"
        new_dir = tmp_path / "new"
        old_dir.mkdir()
        new_dir.mkdir()
        store.save(old_dir)

        # Same count, rows shifted: only the digest tells the files apart.
        store.remove("a")
        store.add("d", [0.0, 0.0, 1.0])
        store.save(new_dir)
        (old_dir / EMBEDDINGS_FILE).write_bytes((new_dir / EMBEDDINGS_FILE).read_bytes())

        target = VectorStore()
        with pytest.raises(CorruptIndexError, match="digest"):
            target.load(old_dir)
        assert len(target) == 0

    def test_bare_id_list_rejected(self, store: VectorStore, tmp_path: Path) -> None:
        store.save(tmp_path)
        (tmp_path / IDS_FILE).write_text(json.dumps(["a", "b", "c"]))
        with pytest.raises(CorruptIndexError):
            VectorStore().load(tmp_path)

    def test_missing_files_rejected(self, tmp_path: Path) -> None:
        with pytest.raises(CorruptIndexError):
            VectorStore().load(tmp_path)

    def test_stats(self, store: VectorStore) -> None:
        assert store.stats() == {"size": 3, "dimension": 3, "memory_bytes": 36}
