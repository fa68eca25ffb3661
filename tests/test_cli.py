"""Tests for the command-line interface."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from catalog_engine import main as cli
from catalog_engine.core import config as config_module


@pytest.fixture(autouse=True)
def isolated_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Keep settings and log files out of the real home directory."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setattr(config_module, "get_config_dir", lambda: home)
    monkeypatch.setattr(cli, "get_config_dir", lambda: home)
    monkeypatch.setattr(config_module, "_settings", None)
    return home


def run(capsys: pytest.CaptureFixture[str], *argv: str) -> tuple[int, str]:
    code = cli.main(["--mock", *argv])
    return code, capsys.readouterr().out


def last_json(output: str) -> dict:
    """The JSON document printed at the end of the output."""
    lines = output.splitlines()
    start = max(i for i, line in enumerate(lines) if line == "{")
    return json.loads("\n".join(lines[start:]))


class TestParser:
    """Tests for argument parsing."""

    def test_requires_command(self) -> None:
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args([])

    def test_rejects_bad_number(self) -> None:
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args(["quote", "--cost", "ten"])

    def test_repeatable_units(self) -> None:
        args = cli.build_parser().parse_args(
            ["create-job", "--keyword", "hoodie", "--keyword", "tote", "--max-pages", "2"]
        )
        assert args.keyword == ["hoodie", "tote"]
        assert args.max_pages == 2


class TestCommands:
    """Tests for command dispatch against the mock catalog."""

    def test_quote(self, capsys: pytest.CaptureFixture[str]) -> None:
        code, out = run(capsys, "quote", "--cost", "10", "--shipping", "5")
        assert code == 0
        assert last_json(out)["retail_local"] == 149.0

    def test_job_lifecycle(self, capsys: pytest.CaptureFixture[str], tmp_path: Path) -> None:
        code, out = run(capsys, "create-job", "--keyword", "hoodie", "--max-pages", "1")
        assert code == 0
        job_id = last_json(out)["id"]

        code, out = run(capsys, "run", str(job_id))
        assert code == 0
        result = last_json(out)
        assert result["status"] == "success"
        assert result["added"] == 20

        code, out = run(capsys, "status", str(job_id))
        assert last_json(out)["totals"]["candidates"] == 20

        output = tmp_path / "out.csv"
        code, out = run(capsys, "export", str(job_id), "--output", str(output))
        assert code == 0
        assert output.exists()
        assert "row(s)" in out

    def test_cancel(self, capsys: pytest.CaptureFixture[str]) -> None:
        _, out = run(capsys, "create-job", "--kind", "scanner", "--category", "cat-1")
        job_id = last_json(out)["id"]

        code, out = run(capsys, "cancel", str(job_id))
        assert code == 0
        assert "Canceled" in out

    def test_match(self, capsys: pytest.CaptureFixture[str]) -> None:
        from catalog_engine.utils.mock_data import get_mock_product_detail

        variant = get_mock_product_detail("MOCK-00001-0001")["variants"][0]
        code, out = run(capsys, "match", "--product", "MOCK-00001-0001", "--label", variant["variantKey"])

        assert code == 0
        assert last_json(out)["variant_id"] == variant["vid"]

    def test_match_unresolved(self, capsys: pytest.CaptureFixture[str]) -> None:
        code, _ = run(capsys, "match", "--product", "MOCK-00001-0001", "--label", "Gift Wrap")
        assert code == 2

    def test_missing_job(self, capsys: pytest.CaptureFixture[str]) -> None:
        code, _ = run(capsys, "status", "4242")
        assert code == 1
