"""Core SlideLens data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List


@dataclass(slots=True)
class DocumentRecord:
    """One indexed source file, keyed by its unique path."""

    path: str
    fingerprint: str
    title: str | None
    indexed_at: int
    id: int | None = None


@dataclass(slots=True)
class SlideRecord:
    """Persisted slide belonging to exactly one document."""

    document_id: int
    slide_index: int
    heading: str | None
    content: str
    text_only: str
    speaker_notes: str
    image_descriptions: str
    id: int | None = None


@dataclass(slots=True)
class ParsedSlide:
    index: int
    heading: str | None
    content: str
    text_only: str
    speaker_notes: str
    images: List[str] = field(default_factory=list)


@dataclass(slots=True)
class ParsedDocument:
    """Parser output for a single Markdown deck."""

    path: Path
    frontmatter: Dict[str, Any]
    title: str
    slides: List[ParsedSlide]


@dataclass(slots=True)
class SearchResult:
    slide_id: int
    document_path: str
    document_title: str | None
    slide_index: int
    heading: str | None
    content: str
    text_only: str
    similarity: float


@dataclass(slots=True)
class StoreStats:
    document_count: int
    slide_count: int
    vector_count: int
    storage_size_bytes: int
