"""Tests for Markdown deck loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from slidelens.ingestion.markdown_loader import (
    extract_image_paths,
    extract_text_content,
    is_local_image,
    parse_markdown_content,
    parse_markdown_file,
)

DECK = """---
marp: true
title: My Talk
---

# Intro

Welcome to **the** talk.

<!-- note: Remember to smile -->

---

## Details

- First point
- Second [link](https://example.com)

![diagram](images/diagram.png)

---

No heading here
"""


class TestParseMarkdownContent:
    def test_frontmatter_and_title(self) -> None:
        doc = parse_markdown_content(DECK, Path("talk.md"))

        assert doc.frontmatter == {"marp": True, "title": "My Talk"}
        assert doc.title == "My Talk"
        assert len(doc.slides) == 3

    def test_slide_fields(self) -> None:
        doc = parse_markdown_content(DECK, Path("talk.md"))
        first, second, third = doc.slides

        assert first.index == 0
        assert first.heading == "Intro"
        assert first.speaker_notes == "Remember to smile"
        assert first.text_only == "Intro Welcome to the talk."

        assert second.heading == "Details"
        assert second.images == ["images/diagram.png"]
        assert second.text_only == "Details First point Second link"

        assert third.heading is None
        assert third.index == 2

    def test_title_falls_back_to_first_heading(self) -> None:
        doc = parse_markdown_content("# Opening\n\ntext\n\n---\n\n# Next\n", Path("x.md"))

        assert doc.frontmatter == {}
        assert doc.title == "Opening"
        assert [slide.heading for slide in doc.slides] == ["Opening", "Next"]

    def test_untitled(self) -> None:
        doc = parse_markdown_content("just text", Path("x.md"))

        assert doc.title == "Untitled"

    def test_blank_slides_are_dropped(self) -> None:
        doc = parse_markdown_content("# A\n\n---\n\n   \n\n---\n\n# B\n", Path("x.md"))

        assert [slide.index for slide in doc.slides] == [0, 1]
        assert doc.slides[1].heading == "B"

    def test_invalid_frontmatter_is_ignored(self) -> None:
        doc = parse_markdown_content("---\n: [unclosed\n---\n\n# Body\n", Path("x.md"))

        assert doc.frontmatter == {}
        assert doc.title == "Body"

    def test_windows_line_endings(self) -> None:
        doc = parse_markdown_content("# A\r\n\r\n---\r\n\r\n# B\r\n", Path("x.md"))

        assert len(doc.slides) == 2

    def test_parse_file(self, tmp_path: Path) -> None:
        path = tmp_path / "deck.md"
        path.write_text(DECK, encoding="utf-8")

        doc = parse_markdown_file(path)

        assert doc.path == path
        assert len(doc.slides) == 3


class TestImages:
    @pytest.mark.parametrize(
        "reference, expected",
        [
            ("img/a.png", True),
            ("a.JPEG", True),
            ("../shared/b.webp", True),
            ("https://example.com/a.png", False),
            ("http://example.com/a.png", False),
            ("data:image/png;base64,AAAA", False),
            ("notes.pdf", False),
        ],
    )
    def test_is_local_image(self, reference: str, expected: bool) -> None:
        assert is_local_image(reference) is expected

    def test_extract_markdown_and_html(self) -> None:
        content = (
            '![a](one.png "title")\n'
            "![b](https://cdn/x.png)\n"
            '<img src="two.jpg" width="10">\n'
            "![c](one.png)\n"
        )

        assert extract_image_paths(content) == ["one.png", "two.jpg"]


class TestExtractText:
    def test_strips_markup(self) -> None:
        content = "# Title\n\n> quoted\n\n1. item\n\n`code`\n\n```\nblock\n```\n\n<b>bold</b>\n\n***\n"

        assert extract_text_content(content) == "Title quoted item bold"

    def test_removes_comments(self) -> None:
        assert extract_text_content("Text <!-- hidden --> more") == "Text more"
