"""Content tracker — per-file content hashes and the chunk ids each file owns.

Change detection compares content hashes only; mtimes are recorded for
diagnostics but never trusted on their own (editors and checkouts touch
files without changing them).
"""

from __future__ import annotations

import hashlib
import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import ValidationError

from uilint_duplicates.index.models import ChangeType, FileChange, FileHashEntry
from uilint_duplicates.index.storage import atomic_write_json

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)

HASHES_FILE = "hashes.json"
HASHES_VERSION = 1


def content_hash(content: str | bytes) -> str:
    """64-bit BLAKE2b hex digest of file content."""
    data = content.encode("utf-8") if isinstance(content, str) else content
    return hashlib.blake2b(data, digest_size=8).hexdigest()


class FileTracker:
    """Tracks which files were indexed, at what content, producing which chunks.

    Paths are keyed relative to *root* in POSIX form so an index survives
    moving the project directory.
    """

    def __init__(self, root: Path) -> None:
        self._root = root.resolve()
        self._files: dict[str, FileHashEntry] = {}

    @property
    def root(self) -> Path:
        return self._root

    def relative(self, path: Path | str) -> str:
        """Project-relative POSIX key for *path* (absolute or relative)."""
        p = Path(path)
        if p.is_absolute():
            try:
                p = p.resolve().relative_to(self._root)
            except ValueError:
                return p.as_posix()
        return p.as_posix()

    def absolute(self, key: str) -> Path:
        return self._root / key

    # ------------------------------------------------------------------
    # Change detection
    # ------------------------------------------------------------------

    def detect_changes(self, paths: Iterable[Path | str]) -> list[FileChange]:
        """Diff the candidate file set against the tracked state.

        Deletions are reported first (tracked paths missing from *paths*, or
        tracked paths that can no longer be read), followed by additions and
        modifications in candidate order.
        """
        candidates: list[str] = []
        seen: set[str] = set()
        for path in paths:
            key = self.relative(path)
            if key not in seen:
                seen.add(key)
                candidates.append(key)

        deleted = [
            FileChange(key, ChangeType.DELETED, old_hash=entry.content_hash)
            for key, entry in self._files.items()
            if key not in seen
        ]
        changes: list[FileChange] = []
        for key in candidates:
            previous = self._files.get(key)
            try:
                current = content_hash(self.absolute(key).read_bytes())
            except OSError:
                logger.warning("Cannot read %s", key)
                if previous is not None:
                    deleted.append(FileChange(key, ChangeType.DELETED, old_hash=previous.content_hash))
                continue

            if previous is None:
                changes.append(FileChange(key, ChangeType.ADDED, new_hash=current))
            elif previous.content_hash != current:
                changes.append(
                    FileChange(
                        key,
                        ChangeType.MODIFIED,
                        old_hash=previous.content_hash,
                        new_hash=current,
                    )
                )
        return deleted + changes

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def update_file(self, path: Path | str, content: str | bytes, chunk_ids: list[str]) -> None:
        """Record the indexed state of one file."""
        key = self.relative(path)
        try:
            mtime = self.absolute(key).stat().st_mtime
        except OSError:
            mtime = 0.0
        self._files[key] = FileHashEntry(
            content_hash=content_hash(content),
            mtime=mtime,
            chunk_ids=list(chunk_ids),
        )

    def remove_entry(self, path: Path | str) -> FileHashEntry | None:
        return self._files.pop(self.relative(path), None)

    def clear(self) -> None:
        self._files.clear()

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    def get_entry(self, path: Path | str) -> FileHashEntry | None:
        return self._files.get(self.relative(path))

    def tracked_files(self) -> list[str]:
        return list(self._files)

    def all_chunk_ids(self) -> set[str]:
        return {cid for entry in self._files.values() for cid in entry.chunk_ids}

    def __len__(self) -> int:
        return len(self._files)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, dir_path: Path) -> None:
        payload = {
            "version": HASHES_VERSION,
            "files": {
                key: entry.model_dump(by_alias=True, mode="json")
                for key, entry in self._files.items()
            },
        }
        atomic_write_json(dir_path / HASHES_FILE, payload)

    def load(self, dir_path: Path) -> None:
        """Load ``hashes.json``; anything unexpected resets to empty."""
        path = dir_path / HASHES_FILE
        self._files = {}
        if not path.exists():
            return
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable %s: %s", path, e)
            return
        if not isinstance(raw, dict) or raw.get("version") != HASHES_VERSION:
            logger.warning("Ignoring %s with unsupported version", path)
            return
        try:
            self._files = {
                key: FileHashEntry.model_validate(entry)
                for key, entry in (raw.get("files") or {}).items()
            }
        except (ValidationError, AttributeError) as e:
            logger.warning("Ignoring invalid %s: %s", path, e)
            self._files = {}
