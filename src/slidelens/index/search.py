"""Semantic search interface."""

from __future__ import annotations

from typing import List

from slidelens.embedding.base import EmbeddingProvider
from slidelens.index.storage import SQLiteVectorStore
from slidelens.models import SearchResult, SlideRecord, StoreStats


class Searcher:
    """High-level API to query the vector store."""

    def __init__(self, provider: EmbeddingProvider, store: SQLiteVectorStore) -> None:
        self.provider = provider
        self.store = store

    async def search(
        self, query: str, *, limit: int = 10, threshold: float = 0.0
    ) -> List[SearchResult]:
        embedding = await self.provider.embed(query)
        results = self.store.search(embedding, limit=limit)
        return [result for result in results if result.similarity >= threshold]

    def get(self, path_fragment: str, slide_number: int) -> SlideRecord | None:
        """Look up a slide by its 1-based number, as shown to users."""
        if slide_number < 1:
            raise ValueError("Slide number must be 1 or greater")
        return self.store.get_slide(path_fragment, slide_number - 1)

    def stats(self) -> StoreStats:
        return self.store.stats()

    def delete_by_path(self, path: str) -> bool:
        return self.store.delete_document(path)
