"""Tests for CLI commands."""

from __future__ import annotations

import logging
from pathlib import Path
from unittest.mock import patch

import pytest
import typer
from typer.testing import CliRunner

from conftest import FakeProvider, write_deck
from slidelens.cli import _ensure_db_parent, _setup_logging, app, format_bytes, parse_slide_reference
from slidelens.config import DEFAULT_DIMENSION
from slidelens.index.storage import SQLiteVectorStore

runner = CliRunner()


@pytest.fixture
def env(monkeypatch):
    """Swap the Gemini provider for a fake one sized like the default index."""
    monkeypatch.setenv("GEMINI_API_KEY", "test-key")
    monkeypatch.delenv("SLIDELENS_DB", raising=False)
    monkeypatch.delenv("SLIDELENS_DIR", raising=False)
    fake = FakeProvider(dimension=DEFAULT_DIMENSION)
    monkeypatch.setattr("slidelens.cli.GeminiEmbeddingProvider", lambda config: fake)
    return fake


def invoke(*args):
    return runner.invoke(app, [*args])


def write_docs(tmp_path: Path) -> tuple[Path, Path]:
    db_path = tmp_path / "index.db"
    docs = tmp_path / "docs"
    write_deck(docs / "talks" / "space.md", ["# Rockets\n\nLaunch into orbit", "# Moon\n\nCraters"])
    write_deck(docs / "garden.md", ["# Gardens\n\nGrow tomatoes"])
    return db_path, docs


class TestHelpers:
    def test_setup_logging_verbose(self) -> None:
        with patch("slidelens.cli.logging.basicConfig") as mock_config:
            _setup_logging(verbose=True)
            assert mock_config.call_args[1]["level"] == logging.DEBUG

    def test_setup_logging_normal(self) -> None:
        with patch("slidelens.cli.logging.basicConfig") as mock_config:
            _setup_logging(verbose=False)
            assert mock_config.call_args[1]["level"] == logging.INFO

    def test_ensure_db_parent_creates_directory(self, tmp_path: Path) -> None:
        db_path = tmp_path / "subdir" / "test.db"
        _ensure_db_parent(db_path)
        assert db_path.parent.exists()

    @pytest.mark.parametrize(
        "size, expected",
        [(0, "0 Bytes"), (512, "512 Bytes"), (2048, "2 KB"), (1536, "1.5 KB"), (5 * 1024**2, "5 MB")],
    )
    def test_format_bytes(self, size: int, expected: str) -> None:
        assert format_bytes(size) == expected

    def test_parse_slide_reference(self) -> None:
        assert parse_slide_reference("slides/deck.md #32") == ("slides/deck.md", 32)
        assert parse_slide_reference("deck.md#1") == ("deck.md", 1)
        with pytest.raises(typer.BadParameter):
            parse_slide_reference("deck.md")


class TestIndexCommand:
    def test_index_and_stats(self, env, tmp_path: Path) -> None:
        db_path, docs = write_docs(tmp_path)

        result = invoke("index", "--dir", str(docs), "--db", str(db_path))

        assert result.exit_code == 0, result.stdout
        assert "Inserted: 2" in result.stdout
        assert "Total slides: 3" in result.stdout

        result = invoke("index", "--dir", str(docs), "--db", str(db_path))
        assert "skipped: 2" in result.stdout

        result = invoke("stats", "--db", str(db_path))
        assert result.exit_code == 0
        assert "Total Slides" in result.stdout

    def test_index_missing_api_key(self, monkeypatch, tmp_path: Path) -> None:
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        db_path, docs = write_docs(tmp_path)

        result = invoke("index", "--dir", str(docs), "--db", str(db_path))

        assert result.exit_code == 1
        assert "GEMINI_API_KEY" in result.stdout
        assert not db_path.exists()

    def test_index_embedding_failure(self, env, tmp_path: Path) -> None:
        db_path, docs = write_docs(tmp_path)
        env.fail_embedding = True

        result = invoke("index", "--dir", str(docs), "--db", str(db_path))

        assert result.exit_code == 1
        assert "provider unavailable" in result.stdout
        store = SQLiteVectorStore(db_path, dimension=env.dimension)
        assert store.stats().document_count == 0
        store.close()


class TestQueryCommands:
    @pytest.fixture
    def populated(self, env, tmp_path: Path):
        db_path, docs = write_docs(tmp_path)
        result = invoke("index", "--dir", str(docs), "--db", str(db_path))
        assert result.exit_code == 0, result.stdout
        return db_path, docs

    def test_search_json(self, populated) -> None:
        db_path, _ = populated

        result = invoke("search", "orbit", "--db", str(db_path), "--format", "json", "--threshold", "0.1")

        assert result.exit_code == 0, result.stdout
        assert '"document_path": "talks/space.md"' in result.stdout
        assert "garden.md" not in result.stdout

    def test_search_table(self, populated) -> None:
        db_path, _ = populated

        result = invoke("search", "orbit", "--db", str(db_path), "-t", "0.1")

        assert result.exit_code == 0
        assert "Found 1 matching slide(s)" in result.stdout

    def test_search_no_results(self, populated) -> None:
        db_path, _ = populated

        result = invoke("search", "zebra", "--db", str(db_path), "--threshold", "0.5")

        assert result.exit_code == 0
        assert "No matching slides found" in result.stdout

    def test_search_database_not_found(self, env, tmp_path: Path) -> None:
        result = invoke("search", "query", "--db", str(tmp_path / "missing.db"))

        assert result.exit_code == 1
        assert "Database not found" in result.stdout

    def test_search_missing_api_key_opens_nothing(self, monkeypatch, tmp_path: Path) -> None:
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        db_path = tmp_path / "index.db"
        db_path.touch()

        with patch("slidelens.cli._open_store") as mock_open:
            result = invoke("search", "query", "--db", str(db_path))

        assert result.exit_code == 1
        assert "GEMINI_API_KEY" in result.stdout
        mock_open.assert_not_called()

    def test_get_partial_path(self, populated) -> None:
        db_path, _ = populated

        result = invoke("get", "space.md #2", "--db", str(db_path))

        assert result.exit_code == 0
        assert "Craters" in result.stdout

    def test_get_not_found_suggests(self, populated) -> None:
        db_path, _ = populated

        result = invoke("get", "space.md #9", "--db", str(db_path))

        assert result.exit_code == 1
        assert "Slide not found" in result.stdout
        assert "talks/space.md" in result.stdout

    def test_get_rejects_slide_zero(self, populated) -> None:
        db_path, _ = populated

        result = invoke("get", "space.md #0", "--db", str(db_path))

        assert result.exit_code == 1

    def test_delete(self, populated) -> None:
        db_path, _ = populated

        result = invoke("delete", "garden.md", "--db", str(db_path))
        assert result.exit_code == 0
        assert "Removed garden.md" in result.stdout

        result = invoke("delete", "garden.md", "--db", str(db_path))
        assert result.exit_code == 1
        assert "Document not found" in result.stdout

    def test_prune(self, populated) -> None:
        db_path, docs = populated
        (docs / "garden.md").unlink()

        result = invoke("prune", "--dir", str(docs), "--db", str(db_path))

        assert result.exit_code == 0
        assert "Removed 1 orphaned documents." in result.stdout

    def test_prune_database_not_found(self, env, tmp_path: Path) -> None:
        result = invoke("prune", "--db", str(tmp_path / "missing.db"))

        assert result.exit_code == 0
        assert "Database not found" in result.stdout
