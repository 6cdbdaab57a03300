"""Tests for the visible, compose and tree commands."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from pricegraph.cli import cli


@pytest.mark.usefixtures("_isolated_project")
class TestVisibleCommand:
    def test_table(self, cli_runner: CliRunner, document_file: Path) -> None:
        result = cli_runner.invoke(cli, ["visible", str(document_file), "t_web"])
        assert result.exit_code == 0
        assert "f_plan" in result.output
        assert "f_support" not in result.output

    def test_selection_reveals(self, cli_runner: CliRunner, document_file: Path) -> None:
        result = cli_runner.invoke(cli, ["--json", "visible", str(document_file), "t_web", "f_plan::o_pro"])
        data = json.loads(result.stdout)["data"]
        assert data["field_ids"] == ["f_plan", "f_notes", "f_support"]

    def test_quiet_ids(self, cli_runner: CliRunner, document_file: Path) -> None:
        result = cli_runner.invoke(cli, ["-q", "visible", str(document_file), "t_web"])
        assert result.stdout.split() == ["f_plan", "f_notes"]

    def test_unknown_tag(self, cli_runner: CliRunner, document_file: Path) -> None:
        result = cli_runner.invoke(cli, ["visible", str(document_file), "nope"])
        assert result.exit_code == 1
        assert "NOT_FOUND" in result.stderr


@pytest.mark.usefixtures("_isolated_project")
class TestComposeCommand:
    def test_services(self, cli_runner: CliRunner, document_file: Path, services_file: Path) -> None:
        args = ["--json", "compose", str(document_file), "o_pro", "o_support", "-s", str(services_file)]
        result = cli_runner.invoke(cli, args)
        assert result.exit_code == 0
        data = json.loads(result.stdout)["data"]
        assert data["tag_id"] == "t_web"
        assert data["service_ids"] == [210, 300]

    def test_missing_capability_warning_on_stderr(self, cli_runner: CliRunner, document_file: Path) -> None:
        result = cli_runner.invoke(cli, ["-q", "compose", str(document_file), "o_basic"])
        assert result.exit_code == 0
        assert result.stdout.strip() == "200"
        assert "WARNING: Service 200 has no known capability record" in result.stderr

    def test_explicit_tag(self, cli_runner: CliRunner, document_file: Path) -> None:
        result = cli_runner.invoke(cli, ["--json", "compose", str(document_file), "--tag", "t_web"])
        assert json.loads(result.stdout)["data"]["service_ids"] == [100]


@pytest.mark.usefixtures("_isolated_project")
class TestTreeCommand:
    def test_outline(self, cli_runner: CliRunner, document_file: Path) -> None:
        result = cli_runner.invoke(cli, ["tree", str(document_file)])
        assert result.exit_code == 0
        lines = result.stdout.splitlines()
        assert lines[0].startswith("tag root")
        assert any("option o_basic" in line for line in lines)

    def test_json_counts(self, cli_runner: CliRunner, document_file: Path) -> None:
        result = cli_runner.invoke(cli, ["--json", "tree", str(document_file)])
        payload = json.loads(result.stdout)
        assert payload["meta"] == {"nodes": 8, "edges": 7}
