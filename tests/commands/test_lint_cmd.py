"""Tests for the lint command."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest
from click.testing import CliRunner

from pricegraph.cli import cli


def _write(path: Path, document: dict[str, Any]) -> Path:
    path.write_text(json.dumps(document), encoding="utf-8")
    return path


@pytest.mark.usefixtures("_isolated_project")
class TestLintCommand:
    def test_clean(self, cli_runner: CliRunner, document_file: Path, services_file: Path) -> None:
        result = cli_runner.invoke(cli, ["lint", str(document_file), "-s", str(services_file)])
        assert result.exit_code == 0
        assert "No issues found" in result.output

    def test_json(self, cli_runner: CliRunner, document_file: Path, services_file: Path) -> None:
        result = cli_runner.invoke(cli, ["--json", "lint", str(document_file), "-s", str(services_file)])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["ok"] is True
        assert data["op"] == "lint"
        assert data["data"]["tags"] == 2

    def test_issues_listed(self, cli_runner: CliRunner, tmp_path: Path, document: dict[str, Any]) -> None:
        document["includes_for_buttons"] = {}
        path = _write(tmp_path / "orphan.json", document)
        result = cli_runner.invoke(cli, ["lint", str(path)])
        assert result.exit_code == 0
        assert "field_unbound" in result.output

    def test_errors_only(self, cli_runner: CliRunner, tmp_path: Path, document: dict[str, Any]) -> None:
        document["includes_for_buttons"] = {}
        path = _write(tmp_path / "orphan.json", document)
        result = cli_runner.invoke(cli, ["--json", "lint", str(path), "--errors-only"])
        data = json.loads(result.stdout)["data"]
        assert data["issues"] == []
        assert data["warnings"] == 0

    def test_strict_exit_code(self, cli_runner: CliRunner, tmp_path: Path, document: dict[str, Any]) -> None:
        document["excludes_for_buttons"] = {"o_pro": ["f_notes"]}
        path = _write(tmp_path / "conflict.json", document)
        relaxed = cli_runner.invoke(cli, ["lint", str(path)])
        assert relaxed.exit_code == 0
        strict = cli_runner.invoke(cli, ["lint", str(path), "--strict"])
        assert strict.exit_code == 1
        assert "option_include_exclude_conflict" in strict.stdout

    def test_toml_document(self, cli_runner: CliRunner, tmp_path: Path) -> None:
        path = tmp_path / "config.toml"
        path.write_text(
            '[[filters]]\nid = "root"\nlabel = "Root"\n\n'
            '[[fields]]\nid = "f_name"\nlabel = "Name"\nbind_id = "root"\n',
            encoding="utf-8",
        )
        result = cli_runner.invoke(cli, ["--json", "lint", str(path)])
        assert result.exit_code == 0
        assert json.loads(result.stdout)["data"]["fields"] == 1

    def test_invalid_document(self, cli_runner: CliRunner, tmp_path: Path) -> None:
        path = _write(tmp_path / "bad.json", {"fields": [{"id": "f", "bind_id": "ghost"}]})
        result = cli_runner.invoke(cli, ["--json", "lint", str(path)])
        assert result.exit_code == 1
        assert result.stdout == ""
        data = json.loads(result.stderr)
        assert data["error"]["code"] == "INVALID_CONFIG"
        assert data["error"]["detail"]["issues"] == ["field 'f' binds to unknown tag 'ghost'"]

    def test_unparseable_document(self, cli_runner: CliRunner, tmp_path: Path) -> None:
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")
        result = cli_runner.invoke(cli, ["lint", str(path)])
        assert result.exit_code == 1
        assert "INVALID_CONFIG" in result.stderr

    def test_missing_document(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["lint", "nope.json"])
        assert result.exit_code == 2
