"""Utility helpers for working with files."""

from __future__ import annotations

import hashlib
import os
from pathlib import Path
from typing import Iterable, Iterator

IGNORED_DIRS = frozenset({".git", "node_modules", "dist", "build"})


def is_ignored(path: Path) -> bool:
    return any(part in IGNORED_DIRS for part in path.parts)


def iter_markdown_paths(inputs: Iterable[Path]) -> Iterator[Path]:
    """Yield Markdown paths from input paths, descending into directories."""
    for item in inputs:
        if item.is_dir():
            children = sorted(
                child
                for child in item.rglob("*.md")
                if child.is_file() and not is_ignored(child.relative_to(item))
            )
            yield from children
        elif item.is_file() and item.suffix.lower() == ".md":
            yield item


def compute_sha256(path: Path) -> str:
    """Compute SHA256 hash for a file."""
    sha = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(1 << 20), b""):
            sha.update(chunk)
    return sha.hexdigest()


def is_readable_file(path: Path) -> bool:
    return path.is_file() and os.access(path, os.R_OK)


def document_key(path: Path, base_dir: Path | None) -> str:
    """Return the identity key a document is stored under.

    Paths below ``base_dir`` are stored relative to it so an index can be
    moved together with its slide directory.
    """
    resolved = path.resolve()
    if base_dir is not None:
        try:
            return resolved.relative_to(base_dir.resolve()).as_posix()
        except ValueError:
            pass
    return resolved.as_posix()
