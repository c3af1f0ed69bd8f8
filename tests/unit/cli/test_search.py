"""Tests for chunkdex search command."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import numpy as np
import pytest
from typer.testing import CliRunner

from chunkdex.cli.main import app
from chunkdex.cli.search import filter_results
from chunkdex.db.models import ChunkWithScore, Work

runner = CliRunner()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@pytest.fixture
def db_path(tmp_path: Path, sample_db) -> Path:
    return sample_db.save(tmp_path / "chunks.json")


@pytest.fixture
def mock_embedder():
    with patch("chunkdex.cli.search.Embedder") as mock_cls:
        # Query closest to the "tuples" chunk.
        mock_cls.return_value.embed_query.return_value = np.array([0.0, 1.0, 0.0, 0.0])
        yield mock_cls


def _search(tmp_path: Path, db_path: Path, *args: str):
    return runner.invoke(
        app, ["search", "immutable sequences", "--db", str(db_path), "--config-dir", str(tmp_path), *args]
    )


# ---------------------------------------------------------------------------
# search command
# ---------------------------------------------------------------------------


def test_search_shows_ranked_results(tmp_path, db_path, mock_embedder) -> None:
    result = _search(tmp_path, db_path)

    assert result.exit_code == 0, result.output
    assert "tuples are immutable sequences" in result.output
    assert "Similarity score: 1.00" in result.output
    assert result.output.index("tuples are immutable") < result.output.index("lists are mutable")
    mock_embedder.return_value.embed_query.assert_called_once_with("immutable sequences")


def test_search_uses_database_embedding_model(tmp_path, db_path, mock_embedder) -> None:
    _search(tmp_path, db_path)
    config = mock_embedder.call_args.args[0]
    assert config.model == "test/fake-embedder"


def test_search_work_filter(tmp_path, db_path, mock_embedder) -> None:
    result = _search(tmp_path, db_path, "--work", "The Python Tutorial")

    assert result.exit_code == 0, result.output
    assert "lists are mutable sequences" in result.output
    assert "tuples are immutable sequences" not in result.output


def test_search_limit(tmp_path, db_path, mock_embedder) -> None:
    result = _search(tmp_path, db_path, "--limit", "1")

    assert result.exit_code == 0, result.output
    assert "tuples are immutable sequences" in result.output
    assert "lists are mutable sequences" not in result.output


def test_search_no_results_after_filter(tmp_path, db_path, mock_embedder) -> None:
    result = _search(tmp_path, db_path, "--limit", "1", "--work", "The Python Tutorial")

    assert result.exit_code == 0
    assert "No matching results" in result.output


def test_search_unknown_work(tmp_path, db_path, mock_embedder) -> None:
    result = _search(tmp_path, db_path, "--work", "Fluent Python")
    assert result.exit_code == 1
    assert "Unknown work" in result.output


def test_search_missing_database(tmp_path, mock_embedder) -> None:
    result = _search(tmp_path, tmp_path / "missing.json")
    assert result.exit_code == 1
    assert "chunkdex build" in result.output
    mock_embedder.assert_not_called()


def test_search_invalid_database(tmp_path, mock_embedder) -> None:
    bad = tmp_path / "bad.json"
    bad.write_text('{"chunks": []}', encoding="utf-8")
    result = _search(tmp_path, bad)
    assert result.exit_code == 1
    assert "is invalid" in " ".join(result.output.split())


def test_search_missing_api_key(tmp_path, db_path, mock_embedder) -> None:
    mock_embedder.return_value.embed_query.side_effect = EnvironmentError("no key")
    result = _search(tmp_path, db_path)
    assert result.exit_code == 1
    assert "No API key" in result.output


def test_search_query_dimension_mismatch(tmp_path, db_path, mock_embedder) -> None:
    mock_embedder.return_value.embed_query.return_value = np.ones(3)
    result = _search(tmp_path, db_path)
    assert result.exit_code == 1
    assert "Search result error" in result.output


def test_search_database_not_utf8(tmp_path, mock_embedder) -> None:
    bad = tmp_path / "bad.json"
    bad.write_bytes(b'{"chunks": "\xff\xfe"}')
    result = _search(tmp_path, bad)
    assert result.exit_code == 1
    assert "is invalid" in " ".join(result.output.split())
    mock_embedder.assert_not_called()


def test_search_embedding_api_failure(tmp_path, db_path) -> None:
    # The database's model has no key requirement, so the request is attempted.
    with patch(
        "chunkdex.rag.llm_client.litellm.embedding", side_effect=RuntimeError("APIConnectionError")
    ):
        result = _search(tmp_path, db_path)
    assert result.exit_code == 1
    assert "Search result error" in result.output
    assert "APIConnectionError" in " ".join(result.output.split())


# ---------------------------------------------------------------------------
# filter_results
# ---------------------------------------------------------------------------


def test_filter_results_limit_applies_before_work_filter(make_chunk) -> None:
    results = [
        ChunkWithScore(make_chunk("a", work=Work.APPLIED_PYTHON_PROGRAMMING), 0.9),
        ChunkWithScore(make_chunk("b", work=Work.THE_PYTHON_TUTORIAL), 0.8),
        ChunkWithScore(make_chunk("c", work=Work.THE_PYTHON_TUTORIAL), 0.7),
    ]
    shown = filter_results(results, {Work.THE_PYTHON_TUTORIAL}, limit=2)
    assert [r.chunk.raw_text for r in shown] == ["b"]


def test_filter_results_no_filter_keeps_order(make_chunk) -> None:
    results = [ChunkWithScore(make_chunk(str(i)), 1.0 - i / 10) for i in range(5)]
    assert filter_results(results, None, limit=3) == results[:3]
    assert filter_results(results, set(), limit=10) == results
