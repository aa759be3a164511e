"""Slide deck indexing pipeline.

A run has four phases: discover and filter unchanged decks, parse the rest,
describe images and embed every slide in run-wide batches, then persist each
deck in its own transaction. Nothing is written until all embeddings are
back, so a provider failure leaves the store exactly as it was.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Sequence

import numpy as np

from slidelens.embedding.base import EmbeddingProvider, ProgressCallback
from slidelens.index.change_detector import ChangeDetector
from slidelens.index.storage import SQLiteVectorStore
from slidelens.ingestion.markdown_loader import parse_markdown_file
from slidelens.models import DocumentRecord, ParsedDocument, ParsedSlide, SlideRecord
from slidelens.utils.files import document_key, is_readable_file, iter_markdown_paths

LOGGER = logging.getLogger(__name__)

EMPTY_SLIDE_TEXT = "(empty slide)"

Parser = Callable[[Path], ParsedDocument]
# Receives a phase name ("images" or "embeddings") plus completed/total counts.
PhaseProgress = Callable[[str, int, int], None]


@dataclass(slots=True)
class IndexStats:
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    empty: int = 0
    slides: int = 0
    images: int = 0
    processed_files: list[Path] = field(default_factory=list)

    def increment(self, status: str, path: Path) -> None:
        if status == "inserted":
            self.inserted += 1
        elif status == "updated":
            self.updated += 1
        elif status == "skipped":
            self.skipped += 1
        elif status == "empty":
            self.empty += 1
        else:
            self.failed += 1
        self.processed_files.append(path)


@dataclass(slots=True)
class _PendingDocument:
    """A deck that passed change detection and parsed into slides."""

    source: Path
    key: str
    fingerprint: str
    existed: bool
    parsed: ParsedDocument
    # Absolute image path for every local reference, per slide.
    slide_images: List[List[Path]] = field(default_factory=list)


def build_embedding_text(slide: ParsedSlide, image_descriptions: Sequence[str]) -> str:
    parts = [slide.heading or "", slide.text_only, slide.speaker_notes, " ".join(image_descriptions)]
    text = " ".join(part for part in parts if part)
    return text or EMPTY_SLIDE_TEXT


class Indexer:
    """Coordinates change detection, embedding and persistence."""

    def __init__(
        self,
        provider: EmbeddingProvider,
        store: SQLiteVectorStore,
        *,
        parser: Parser = parse_markdown_file,
    ) -> None:
        self.provider = provider
        self.store = store
        self.parser = parser

    async def index(
        self,
        paths: Sequence[Path],
        *,
        base_dir: Path | None = None,
        rebuild: bool = False,
        with_images: bool = False,
        progress: PhaseProgress | None = None,
    ) -> IndexStats:
        """Index every Markdown deck found under ``paths``."""
        stats = IndexStats()
        detector = ChangeDetector(self.store, rebuild=rebuild)

        pending = self._collect(self._discover(paths, base_dir, detector, stats), stats)
        if not pending:
            return stats

        descriptions: Dict[Path, str] = {}
        if with_images:
            unique_images = list(
                dict.fromkeys(image for doc in pending for images in doc.slide_images for image in images)
            )
            if unique_images:
                LOGGER.info("Describing %d images", len(unique_images))
                descriptions = await self.provider.describe_images(
                    unique_images, self._phase_callback(progress, "images")
                )
                stats.images = len(unique_images)

        texts: List[str] = []
        slide_descriptions: List[List[List[str]]] = []
        for doc in pending:
            per_slide = []
            for slide, images in zip(doc.parsed.slides, doc.slide_images):
                found = [descriptions.get(image, "") for image in images]
                found = [text for text in found if text]
                per_slide.append(found)
                texts.append(build_embedding_text(slide, found))
            slide_descriptions.append(per_slide)

        LOGGER.info("Generating embeddings for %d slides", len(texts))
        vectors = await self.provider.embed_batch(texts, self._phase_callback(progress, "embeddings"))
        if len(vectors) != len(texts):
            raise RuntimeError(f"Provider returned {len(vectors)} vectors for {len(texts)} slides")

        offset = 0
        for doc, per_slide in zip(pending, slide_descriptions):
            count = len(doc.parsed.slides)
            self._persist(doc, per_slide, vectors[offset : offset + count])
            offset += count
            stats.slides += count
            stats.increment("updated" if doc.existed else "inserted", doc.source)
            LOGGER.info("Indexed %s (%d slides)", doc.key, count)

        return stats

    @staticmethod
    def _phase_callback(progress: PhaseProgress | None, phase: str) -> ProgressCallback | None:
        if progress is None:
            return None
        return lambda completed, total: progress(phase, completed, total)

    def _discover(
        self,
        paths: Sequence[Path],
        base_dir: Path | None,
        detector: ChangeDetector,
        stats: IndexStats,
    ) -> List[tuple[Path, str, str, bool]]:
        selected = []
        seen: set[str] = set()
        for path in iter_markdown_paths(paths):
            key = document_key(path, base_dir)
            if key in seen:
                continue
            seen.add(key)
            if not is_readable_file(path):
                LOGGER.warning("Cannot read %s", path)
                stats.increment("failed", path)
                continue
            fingerprint = detector.compute_fingerprint(path)
            if not detector.should_reindex(key, fingerprint):
                LOGGER.debug("Skipping unchanged: %s", key)
                stats.increment("skipped", path)
                continue
            existed = self.store.get_document(key) is not None
            selected.append((path, key, fingerprint, existed))
        return selected

    def _collect(
        self,
        selected: List[tuple[Path, str, str, bool]],
        stats: IndexStats,
    ) -> List[_PendingDocument]:
        pending = []
        for path, key, fingerprint, existed in selected:
            try:
                parsed = self.parser(path)
            except Exception as exc:
                LOGGER.error("Failed to parse %s: %s", path, exc)
                stats.increment("failed", path)
                continue

            if not parsed.slides:
                LOGGER.warning("No slides found: %s", key)
                stats.increment("empty", path)
                continue

            slide_dir = path.resolve().parent
            slide_images = [
                [
                    resolved
                    for resolved in ((slide_dir / reference).resolve() for reference in slide.images)
                    if is_readable_file(resolved)
                ]
                for slide in parsed.slides
            ]
            pending.append(_PendingDocument(path, key, fingerprint, existed, parsed, slide_images))
        return pending

    def _persist(
        self,
        doc: _PendingDocument,
        slide_descriptions: List[List[str]],
        vectors: Sequence[np.ndarray],
    ) -> None:
        record = DocumentRecord(
            path=doc.key,
            fingerprint=doc.fingerprint,
            title=doc.parsed.title,
            indexed_at=int(time.time() * 1000),
        )
        with self.store.transaction():
            document_id = self.store.upsert_document(record)
            for slide, descriptions, vector in zip(doc.parsed.slides, slide_descriptions, vectors):
                self.store.insert_slide_with_vector(
                    SlideRecord(
                        document_id=document_id,
                        slide_index=slide.index,
                        heading=slide.heading,
                        content=slide.content,
                        text_only=slide.text_only,
                        speaker_notes=slide.speaker_notes,
                        image_descriptions="\n".join(descriptions),
                    ),
                    vector,
                )
