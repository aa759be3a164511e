"""Contract the indexing core expects from an embedding provider."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Dict, Protocol, Sequence, runtime_checkable

import numpy as np

ProgressCallback = Callable[[int, int], None]


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Turns slide text and images into fixed-length vectors.

    ``embed_batch`` must return vectors in input order. ``describe_images``
    must return an entry for every input path, using an empty string for
    images that could not be described.
    """

    dimension: int

    async def embed(self, text: str) -> np.ndarray: ...

    async def embed_batch(
        self, texts: Sequence[str], progress: ProgressCallback | None = None
    ) -> list[np.ndarray]: ...

    async def describe_image(self, path: Path) -> str: ...

    async def describe_images(
        self, paths: Sequence[Path], progress: ProgressCallback | None = None
    ) -> Dict[Path, str]: ...
