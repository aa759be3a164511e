"""Shared fixtures: a deterministic in-process embedding provider and deck helpers."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Dict, Sequence

import numpy as np
import pytest

from slidelens.errors import EmbeddingError
from slidelens.index.storage import SQLiteVectorStore

DIMENSION = 256


class FakeProvider:
    """Bag-of-words embeddings with a vocabulary shared between indexing and queries.

    Every distinct token gets its own dimension (slot 0 is reserved for texts
    without tokens), so cosine similarity reflects shared words exactly as
    long as the corpus stays below ``dimension - 1`` tokens.
    """

    def __init__(self, dimension: int = DIMENSION, descriptions: Dict[str, str] | None = None) -> None:
        self.dimension = dimension
        self.vocabulary: Dict[str, int] = {}
        self.descriptions = descriptions or {}
        self.fail_embedding = False
        self.embed_calls: list[list[str]] = []
        self.image_calls: list[list[Path]] = []

    def vector(self, text: str) -> np.ndarray:
        vector = np.zeros(self.dimension, dtype="float32")
        tokens = re.findall(r"\w+", text.lower())
        if not tokens:
            vector[0] = 1.0
            return vector
        for token in tokens:
            if token not in self.vocabulary:
                self.vocabulary[token] = 1 + len(self.vocabulary) % (self.dimension - 1)
            vector[self.vocabulary[token]] += 1.0
        return vector

    async def embed(self, text: str) -> np.ndarray:
        return self.vector(text)

    async def embed_batch(self, texts: Sequence[str], progress=None) -> list[np.ndarray]:
        self.embed_calls.append(list(texts))
        if self.fail_embedding:
            raise EmbeddingError("provider unavailable")
        vectors = [self.vector(text) for text in texts]
        if progress is not None:
            progress(len(texts), len(texts))
        return vectors

    async def describe_image(self, path: Path) -> str:
        return self.descriptions.get(Path(path).name, "")

    async def describe_images(self, paths: Sequence[Path], progress=None) -> Dict[Path, str]:
        self.image_calls.append(list(paths))
        return {path: await self.describe_image(path) for path in paths}


def write_deck(path: Path, slides: Sequence[str], *, title: str | None = None) -> Path:
    """Write a Marp-style deck with optional front matter."""
    path.parent.mkdir(parents=True, exist_ok=True)
    header = "---\nmarp: true\n" + (f"title: {title}\n" if title else "") + "---\n\n"
    path.write_text(header + "\n\n---\n\n".join(slides) + "\n", encoding="utf-8")
    return path


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def store(tmp_path):
    """Create a temporary database for testing."""
    db = SQLiteVectorStore(tmp_path / "test.db", dimension=DIMENSION)
    yield db
    db.close()
