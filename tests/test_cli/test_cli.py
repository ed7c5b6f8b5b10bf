"""Tests for casebrief.cli.

Exercises the Typer CLI app via CliRunner, covering the version flag and
the info, budget, estimate, assemble and limits commands.
"""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

from typer.testing import CliRunner

from casebrief import __version__
from casebrief.cli import app
from casebrief.tokens.estimator import TRUNCATION_MARKER

runner = CliRunner()

# ---------------------------------------------------------------------------
# main callback (--version)
# ---------------------------------------------------------------------------


class TestMainCallback:
    """The root callback with --version flag.

    The callback does not set ``invoke_without_command=True``, so
    ``--version`` must be paired with a subcommand for the callback to
    execute.
    """

    def test_version_flag_prints_version_and_exits(self) -> None:
        result = runner.invoke(app, ["--version", "info"])
        assert result.exit_code == 0
        assert "casebrief" in result.output
        assert __version__ in result.output

    def test_short_version_flag(self) -> None:
        result = runner.invoke(app, ["-v", "info"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_no_subcommand_exits_with_error(self) -> None:
        result = runner.invoke(app, [])
        assert result.exit_code == 2

    def test_help_lists_commands(self) -> None:
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        for command in ("info", "budget", "estimate", "assemble", "limits"):
            assert command in result.output


# ---------------------------------------------------------------------------
# info
# ---------------------------------------------------------------------------


class TestInfoCommand:
    def test_info_shows_version_and_python(self) -> None:
        result = runner.invoke(app, ["info"])
        assert result.exit_code == 0
        assert __version__ in result.output
        assert "Python" in result.output
        assert "pydantic" in result.output

    def test_info_reports_missing_dependency(self) -> None:
        with patch("importlib.import_module", side_effect=ImportError("mocked")):
            result = runner.invoke(app, ["info"])
        assert result.exit_code == 0
        assert "not installed" in result.output


# ---------------------------------------------------------------------------
# budget / limits
# ---------------------------------------------------------------------------


class TestBudgetCommand:
    def test_default_budget(self) -> None:
        result = runner.invoke(app, ["budget"])
        assert result.exit_code == 0
        assert "60,000" in result.output
        assert "40,000" in result.output
        assert "50,000" in result.output

    def test_custom_total(self) -> None:
        result = runner.invoke(app, ["budget", "--total", "30000"])
        assert result.exit_code == 0
        assert "12,000" in result.output

    def test_total_above_backend_limit(self) -> None:
        result = runner.invoke(app, ["budget", "--total", "300000"])
        assert result.exit_code == 1
        assert "Error" in result.output


class TestLimitsCommand:
    def test_lists_every_class(self) -> None:
        result = runner.invoke(app, ["limits"])
        assert result.exit_code == 0
        for name in ("general", "generation", "analysis", "upload", "unauthenticated"):
            assert name in result.output
        assert "3600s" in result.output


# ---------------------------------------------------------------------------
# estimate
# ---------------------------------------------------------------------------


class TestEstimateCommand:
    def test_estimate_file(self, tmp_path: Path) -> None:
        f = tmp_path / "note.txt"
        f.write_text("x" * 400)
        result = runner.invoke(app, ["estimate", str(f)])
        assert result.exit_code == 0
        assert "~100 tokens" in result.output

    def test_estimate_within_cap(self, tmp_path: Path) -> None:
        f = tmp_path / "note.txt"
        f.write_text("x" * 400)
        result = runner.invoke(app, ["estimate", str(f), "--cap", "200"])
        assert "Fits within 200 tokens" in result.output

    def test_estimate_over_cap(self, tmp_path: Path) -> None:
        f = tmp_path / "big.txt"
        f.write_text("x" * 100_000)
        result = runner.invoke(app, ["estimate", str(f), "--cap", "5000"])
        assert result.exit_code == 0
        assert f"{19_900 + len(TRUNCATION_MARKER):,} chars" in result.output

    def test_cap_below_marker_size(self, tmp_path: Path) -> None:
        f = tmp_path / "big.txt"
        f.write_text("x" * 1000)
        result = runner.invoke(app, ["estimate", str(f), "--cap", "5"])
        assert result.exit_code == 1
        assert "Error" in result.output
        assert result.exception is None or isinstance(result.exception, SystemExit)

    def test_missing_file(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["estimate", str(tmp_path / "nope.txt")])
        assert result.exit_code == 1
        assert "Error" in result.output


# ---------------------------------------------------------------------------
# assemble
# ---------------------------------------------------------------------------


def _payload(tmp_path: Path, **overrides: object) -> Path:
    data: dict[str, object] = {
        "case_context": "Repayment delayed.",
        "sources": [{"filename": "letter.pdf", "processed_data": {"text": "Body", "dates": ["2024-03-01"]}}],
        "references": [{"title": f"Ref {i}", "content": "guidance", "relevance_score": i / 12} for i in range(12)],
        "precedents": [{"title": f"Prec {i}", "outcome": "Upheld", "relevance_score": i / 8} for i in range(8)],
    }
    data.update(overrides)
    path = tmp_path / "input.json"
    path.write_text(json.dumps(data))
    return path


class TestAssembleCommand:
    def test_prints_section_table(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["assemble", str(_payload(tmp_path))])
        assert result.exit_code == 0
        assert "10/12" in result.output
        assert "5/8" in result.output
        assert "Total:" in result.output

    def test_writes_output(self, tmp_path: Path) -> None:
        out = tmp_path / "context.txt"
        result = runner.invoke(app, ["assemble", str(_payload(tmp_path)), "--output", str(out)])
        assert result.exit_code == 0
        text = out.read_text()
        assert "--- DOCUMENT: letter.pdf ---" in text
        assert "PRECEDENT: Prec 7" in text
        assert "PRECEDENT: Prec 0" not in text

    def test_truncated_section_reported(self, tmp_path: Path) -> None:
        big = [{"filename": f"{i}.txt", "text": "x" * 100_000} for i in range(5)]
        out = tmp_path / "context.txt"
        args = ["assemble", str(_payload(tmp_path, sources=big)), "--total", "1000", "-o", str(out)]
        result = runner.invoke(app, args)
        assert result.exit_code == 0
        assert "yes" in result.output
        assert len(out.read_text()) <= 4000

    def test_invalid_json(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.json"
        path.write_text("{not json")
        result = runner.invoke(app, ["assemble", str(path)])
        assert result.exit_code == 1
        assert "Error" in result.output

    def test_missing_file(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["assemble", str(tmp_path / "missing.json")])
        assert result.exit_code == 1
