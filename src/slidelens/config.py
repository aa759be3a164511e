"""Application configuration defaults."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_DB_NAME = "slidelens.db"
DEFAULT_MODEL = "gemini-embedding-001"
DEFAULT_VISION_MODEL = "gemini-2.0-flash"
DEFAULT_DIMENSION = 768
# Hard limit of the batch embedding endpoint
MAX_BATCH_SIZE = 250


def _get_default_db_path() -> Path:
    """Database path used when neither the CLI nor the environment sets one."""
    env_db = os.environ.get("SLIDELENS_DB")
    if env_db:
        return Path(env_db)
    return Path(DEFAULT_DB_NAME)


def _get_default_dir() -> Path:
    env_dir = os.environ.get("SLIDELENS_DIR")
    return Path(env_dir) if env_dir else Path.cwd()


@dataclass(slots=True)
class AppConfig:
    db_path: Path | None = None
    docs_dir: Path | None = None
    api_key: str | None = None
    model_name: str = DEFAULT_MODEL
    vision_model: str = DEFAULT_VISION_MODEL
    dimension: int = DEFAULT_DIMENSION
    batch_size: int = MAX_BATCH_SIZE
    parallel_batches: int = 3
    batch_delay: float = 0.1
    image_delay: float = 0.5

    def __post_init__(self) -> None:
        if self.db_path is None:
            self.db_path = _get_default_db_path()
        if self.docs_dir is None:
            self.docs_dir = _get_default_dir()
        if not 1 <= self.batch_size <= MAX_BATCH_SIZE:
            raise ValueError(f"batch_size must be between 1 and {MAX_BATCH_SIZE}")
        if self.parallel_batches < 1:
            raise ValueError("parallel_batches must be at least 1")

    @classmethod
    def from_env(cls, **overrides) -> "AppConfig":
        """Build a config from the environment, letting explicit values win."""
        values = {key: value for key, value in overrides.items() if value is not None}
        values.setdefault("api_key", os.environ.get("GEMINI_API_KEY"))
        return cls(**values)

    def resolve_db_path(self, base_dir: Path | None = None) -> Path:
        if self.db_path is None:
            self.db_path = _get_default_db_path()
        if Path(self.db_path).is_absolute() or base_dir is None:
            return Path(self.db_path)
        return base_dir / self.db_path
