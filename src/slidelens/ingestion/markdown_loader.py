"""Markdown slide deck loading.

Decks follow the Marp convention: optional YAML front matter, then slides
separated by lines containing only ``---``.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Dict, List

import yaml

from slidelens.models import ParsedDocument, ParsedSlide

LOGGER = logging.getLogger(__name__)

IMAGE_EXTENSIONS = frozenset({"png", "jpg", "jpeg", "gif", "webp"})

_FRONTMATTER_RE = re.compile(r"\A---\n(.*?)\n---(?:\n|\Z)", re.DOTALL)
_SLIDE_SEPARATOR_RE = re.compile(r"\n---\n")
_HEADING_RE = re.compile(r"^#+\s+(.+)$", re.MULTILINE)
_NOTE_RE = re.compile(r"<!--\s*note:\s*(.*?)-->", re.IGNORECASE | re.DOTALL)
_MD_IMAGE_RE = re.compile(r"!\[.*?\]\(([^)]+)\)")
_HTML_IMAGE_RE = re.compile(r"<img[^>]+src=[\"']([^\"']+)[\"']", re.IGNORECASE)

# Applied in order to turn slide Markdown into plain searchable text.
_TEXT_RULES: List[tuple[re.Pattern[str], str]] = [
    (re.compile(r"<!--.*?-->", re.DOTALL), ""),
    (re.compile(r"<[^>]+>"), " "),
    (re.compile(r"!\[.*?\]\(.*?\)"), ""),
    (re.compile(r"\[([^\]]+)\]\([^)]+\)"), r"\1"),
    (re.compile(r"```.*?```", re.DOTALL), ""),
    (re.compile(r"`[^`]+`"), ""),
    (re.compile(r"\*\*([^*]+)\*\*"), r"\1"),
    (re.compile(r"\*([^*]+)\*"), r"\1"),
    (re.compile(r"__([^_]+)__"), r"\1"),
    (re.compile(r"_([^_]+)_"), r"\1"),
    (re.compile(r"^#+\s+", re.MULTILINE), ""),
    (re.compile(r"^\s*[-*+]\s+", re.MULTILINE), ""),
    (re.compile(r"^\s*\d+\.\s+", re.MULTILINE), ""),
    (re.compile(r"^>\s+", re.MULTILINE), ""),
    (re.compile(r"^[-*_]{3,}$", re.MULTILINE), ""),
    (re.compile(r"\s+"), " "),
]


def is_local_image(reference: str) -> bool:
    """Return True for relative or absolute file references to raster images."""
    lowered = reference.lower()
    if lowered.startswith(("http://", "https://", "data:")):
        return False
    return lowered.rsplit(".", 1)[-1] in IMAGE_EXTENSIONS


def extract_image_paths(content: str) -> List[str]:
    found: List[str] = []
    for match in _MD_IMAGE_RE.finditer(content):
        parts = match.group(1).split()
        if parts and is_local_image(parts[0]):
            found.append(parts[0])
    for match in _HTML_IMAGE_RE.finditer(content):
        if is_local_image(match.group(1)):
            found.append(match.group(1))
    return list(dict.fromkeys(found))


def extract_text_content(content: str) -> str:
    text = content
    for pattern, replacement in _TEXT_RULES:
        text = pattern.sub(replacement, text)
    return text.strip()


def parse_slide(content: str, index: int) -> ParsedSlide:
    heading = _HEADING_RE.search(content)
    note = _NOTE_RE.search(content)
    return ParsedSlide(
        index=index,
        heading=heading.group(1).strip() if heading else None,
        content=content,
        text_only=extract_text_content(content),
        speaker_notes=note.group(1).strip() if note else "",
        images=extract_image_paths(content),
    )


def _load_frontmatter(raw: str, path: Path) -> Dict[str, Any]:
    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        LOGGER.warning("Invalid front matter in %s: %s", path, exc)
        return {}
    return data if isinstance(data, dict) else {}


def parse_markdown_content(content: str, path: Path) -> ParsedDocument:
    content = content.replace("\r\n", "\n")
    frontmatter: Dict[str, Any] = {}
    body = content
    match = _FRONTMATTER_RE.match(content)
    if match:
        frontmatter = _load_frontmatter(match.group(1), path)
        body = content[match.end() :]

    chunks = [chunk for chunk in _SLIDE_SEPARATOR_RE.split(body) if chunk.strip()]
    slides = [parse_slide(chunk, index) for index, chunk in enumerate(chunks)]

    title = frontmatter.get("title")
    if not isinstance(title, str) or not title:
        title = (slides[0].heading if slides else None) or "Untitled"

    return ParsedDocument(path=path, frontmatter=frontmatter, title=title, slides=slides)


def parse_markdown_file(path: Path) -> ParsedDocument:
    """Read and parse a Markdown deck from disk."""
    path = Path(path)
    return parse_markdown_content(path.read_text(encoding="utf-8"), path)
