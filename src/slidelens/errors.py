"""Exception hierarchy shared by the indexing and search layers."""

from __future__ import annotations


class SlideLensError(Exception):
    """Base class for all SlideLens failures."""


class ConfigurationError(SlideLensError):
    """Fatal setup problem detected before any indexing or search I/O."""


class DimensionMismatchError(ConfigurationError):
    """A vector does not have the dimensionality the store was created with."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(f"Expected vectors of dimension {expected}, got {actual}")
        self.expected = expected
        self.actual = actual


class InvalidSlideIdError(SlideLensError, ValueError):
    """A vector was addressed by something other than a non-negative integer id."""


class EmbeddingError(SlideLensError):
    """The embedding provider failed to return vectors for a batch."""


class ZeroVectorError(SlideLensError, ValueError):
    """A vector has zero norm, so its cosine distance to anything is undefined."""
