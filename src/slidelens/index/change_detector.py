"""Decides which documents need to be re-indexed."""

from __future__ import annotations

from pathlib import Path

from slidelens.index.storage import SQLiteVectorStore
from slidelens.utils.files import compute_sha256


class ChangeDetector:
    """Compares raw-byte fingerprints against the stored document records.

    Only the source bytes matter: a document whose file is unchanged is
    skipped even if the parser would now produce different slides.
    """

    def __init__(self, store: SQLiteVectorStore, *, rebuild: bool = False) -> None:
        self.store = store
        self.rebuild = rebuild

    @property
    def is_forced_rebuild(self) -> bool:
        return self.rebuild

    @staticmethod
    def compute_fingerprint(path: Path) -> str:
        return compute_sha256(path)

    def should_reindex(self, path: str, current_fingerprint: str) -> bool:
        if self.is_forced_rebuild:
            return True
        existing = self.store.get_document(path)
        return existing is None or existing.fingerprint != current_fingerprint
