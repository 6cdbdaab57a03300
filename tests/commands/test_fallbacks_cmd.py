"""Tests for the fallbacks command group."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest
from click.testing import CliRunner

from pricegraph.cli import cli


@pytest.mark.usefixtures("_isolated_project")
class TestFallbacksFailed:
    def test_none(self, cli_runner: CliRunner, document_file: Path, services_file: Path) -> None:
        result = cli_runner.invoke(cli, ["fallbacks", "failed", str(document_file), "-s", str(services_file)])
        assert result.exit_code == 0
        assert "All authored fallbacks are usable" in result.output

    def test_reported(
        self,
        cli_runner: CliRunner,
        tmp_path: Path,
        document: dict[str, Any],
        services_file: Path,
    ) -> None:
        document["fallbacks"] = {"nodes": {"o_basic": [301]}}
        path = tmp_path / "mismatch.json"
        path.write_text(json.dumps(document), encoding="utf-8")
        result = cli_runner.invoke(cli, ["--json", "fallbacks", "failed", str(path), "-s", str(services_file)])
        data = json.loads(result.stdout)["data"]
        assert data["count"] == 1
        assert data["failures"][0]["reason"] == "constraint_mismatch"


@pytest.mark.usefixtures("_isolated_project")
class TestFallbacksEligible:
    def test_node_list(self, cli_runner: CliRunner, document_file: Path, services_file: Path) -> None:
        args = ["-q", "fallbacks", "eligible", str(document_file), "200", "--node", "o_basic", "-s", str(services_file)]
        result = cli_runner.invoke(cli, args)
        assert result.exit_code == 0
        assert result.stdout.strip() == "302"


@pytest.mark.usefixtures("_isolated_project")
class TestFallbacksCheck:
    def test_scores(self, cli_runner: CliRunner, document_file: Path, services_file: Path) -> None:
        args = [
            "--json",
            "fallbacks",
            "check",
            str(document_file),
            "t_web",
            "302",
            "301",
            "--select",
            "o_basic",
            "-s",
            str(services_file),
        ]
        result = cli_runner.invoke(cli, args)
        assert result.exit_code == 0
        data = json.loads(result.stdout)["data"]
        assert data["eligible"] == [302]

    def test_candidates_required(self, cli_runner: CliRunner, document_file: Path) -> None:
        result = cli_runner.invoke(cli, ["fallbacks", "check", str(document_file), "t_web"])
        assert result.exit_code == 2
