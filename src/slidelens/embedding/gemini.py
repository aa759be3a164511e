"""Gemini embedding and vision client.

Embeddings are requested in chunks of ``batch_size`` texts (at most 250). A wave
of ``parallel_batches`` chunks is sent concurrently, followed by a short pause
before the next wave. Image descriptions go one at a time because the vision
endpoint has a tighter rate limit.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Sequence

import numpy as np
from google import genai
from google.genai import types

from slidelens.embedding.base import ProgressCallback
from slidelens.errors import ConfigurationError, DimensionMismatchError, EmbeddingError

if TYPE_CHECKING:
    from slidelens.config import AppConfig

IMAGE_PROMPT = (
    "Describe this image in detail. It appears on a presentation slide, so "
    "include keywords that would help someone find the slide by searching."
)

MIME_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
}

LOGGER = logging.getLogger(__name__)


def guess_mime_type(path: Path) -> str:
    return MIME_TYPES.get(path.suffix.lower(), "image/png")


class GeminiEmbeddingProvider:
    """Async wrapper around the Google GenAI SDK.

    The client is created once per provider and passed around explicitly;
    tests inject a fake ``client`` exposing ``aio.models``.
    """

    def __init__(
        self,
        config: AppConfig,
        *,
        api_key: str | None = None,
        client: Any | None = None,
    ) -> None:
        self.config = config
        self.model_name = config.model_name
        self.vision_model = config.vision_model
        self.dimension = config.dimension
        self.batch_size = config.batch_size
        self.parallel_batches = config.parallel_batches
        self.batch_delay = config.batch_delay
        self.image_delay = config.image_delay

        if client is None:
            key = api_key or config.api_key
            if not key:
                raise ConfigurationError(
                    "GEMINI_API_KEY environment variable is not set"
                )
            client = genai.Client(api_key=key)
        self._client = client

        LOGGER.debug(
            "Gemini provider configured: model=%s, dimension=%d, batch_size=%d, parallel=%d",
            self.model_name,
            self.dimension,
            self.batch_size,
            self.parallel_batches,
        )

    def _embed_config(self, task_type: str) -> types.EmbedContentConfig:
        return types.EmbedContentConfig(
            task_type=task_type,
            output_dimensionality=self.dimension,
        )

    def _to_vector(self, values: Sequence[float]) -> np.ndarray:
        vector = np.asarray(values, dtype="float32")
        if vector.shape != (self.dimension,):
            raise DimensionMismatchError(self.dimension, int(vector.size))
        return vector

    async def _embed_chunk(self, texts: Sequence[str], task_type: str) -> list[np.ndarray]:
        try:
            response = await self._client.aio.models.embed_content(
                model=self.model_name,
                contents=list(texts),
                config=self._embed_config(task_type),
            )
        except Exception as exc:
            raise EmbeddingError(f"Gemini embedding request failed: {exc}") from exc

        embeddings = response.embeddings or []
        if len(embeddings) != len(texts):
            raise EmbeddingError(
                f"Gemini returned {len(embeddings)} embeddings for {len(texts)} texts"
            )
        return [self._to_vector(item.values) for item in embeddings]

    async def embed(self, text: str) -> np.ndarray:
        """Embed a single search query."""
        vectors = await self._embed_chunk([text], "RETRIEVAL_QUERY")
        return vectors[0]

    async def embed_batch(
        self, texts: Sequence[str], progress: ProgressCallback | None = None
    ) -> list[np.ndarray]:
        """Embed slide texts, returning vectors in input order."""
        total = len(texts)
        results: list[np.ndarray | None] = [None] * total
        chunks = [
            (start, texts[start : start + self.batch_size])
            for start in range(0, total, self.batch_size)
        ]
        completed = 0

        for wave_start in range(0, len(chunks), self.parallel_batches):
            wave = chunks[wave_start : wave_start + self.parallel_batches]
            responses = await asyncio.gather(
                *(self._embed_chunk(chunk, "RETRIEVAL_DOCUMENT") for _, chunk in wave)
            )
            for (start, _), vectors in zip(wave, responses):
                for offset, vector in enumerate(vectors):
                    results[start + offset] = vector
                completed += len(vectors)
                if progress is not None:
                    progress(completed, total)

            if wave_start + self.parallel_batches < len(chunks):
                await asyncio.sleep(self.batch_delay)

        return results  # type: ignore[return-value]

    async def describe_image(self, path: Path) -> str:
        path = Path(path)
        part = types.Part.from_bytes(data=path.read_bytes(), mime_type=guess_mime_type(path))
        response = await self._client.aio.models.generate_content(
            model=self.vision_model,
            contents=[part, IMAGE_PROMPT],
        )
        return (response.text or "").strip()

    async def describe_images(
        self, paths: Sequence[Path], progress: ProgressCallback | None = None
    ) -> Dict[Path, str]:
        descriptions: Dict[Path, str] = {}
        total = len(paths)
        for position, path in enumerate(paths, start=1):
            try:
                descriptions[path] = await self.describe_image(path)
            except Exception as exc:
                LOGGER.warning("Failed to describe image %s: %s", path, exc)
                descriptions[path] = ""

            if progress is not None:
                progress(position, total)
            if position < total:
                await asyncio.sleep(self.image_delay)
        return descriptions
