"""Shared pytest fixtures for pricegraph tests."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest
from click.testing import CliRunner

from pricegraph.infrastructure.builder import Builder


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def services() -> dict[int, dict[str, Any]]:
    """Capability records for the sample document, keyed by service id."""
    return {
        100: {"id": 100, "rate": 10.0, "refill": True, "provider": "alpha"},
        200: {"id": 200, "rate": 10.0, "refill": True, "provider": "alpha"},
        210: {"id": 210, "rate": 9.5, "refill": True, "provider": "alpha"},
        300: {"id": 300, "rate": 2.0, "refill": True, "provider": "beta"},
        301: {"id": 301, "rate": 9.0, "refill": False, "provider": "alpha"},
        302: {"id": 302, "rate": 8.0, "refill": True, "provider": "alpha"},
    }


@pytest.fixture
def document() -> dict[str, Any]:
    """A small, lint-clean document.

    ``t_web`` carries service 100 and requires ``refill``. Choosing
    ``o_pro`` reveals the unbound ``f_support`` field.
    """
    return {
        "filters": [
            {"id": "root", "label": "Root"},
            {
                "id": "t_web",
                "label": "Web",
                "bind_id": "root",
                "service_id": 100,
                "constraints": {"refill": True},
            },
        ],
        "fields": [
            {
                "id": "f_plan",
                "label": "Plan",
                "type": "select",
                "bind_id": "t_web",
                "options": [
                    {"id": "o_basic", "label": "Basic", "service_id": 200},
                    {"id": "o_pro", "label": "Pro", "service_id": 210},
                ],
            },
            {"id": "f_notes", "label": "Notes", "type": "text", "bind_id": "t_web"},
            {
                "id": "f_support",
                "label": "Support",
                "type": "select",
                "options": [
                    {
                        "id": "o_support",
                        "label": "24/7",
                        "pricing_role": "addon",
                        "service_id": 300,
                    },
                ],
            },
        ],
        "includes_for_buttons": {"o_pro": ["f_support"]},
        "fallbacks": {"nodes": {"o_basic": [302]}},
    }


@pytest.fixture
def builder(document: dict[str, Any], services: dict[int, dict[str, Any]]) -> Builder:
    """Builder loaded with the sample document and service map."""
    b = Builder(services=services)
    b.load(document)
    return b


@pytest.fixture
def document_file(tmp_path: Path, document: dict[str, Any]) -> Path:
    path = tmp_path / "config.json"
    path.write_text(json.dumps(document), encoding="utf-8")
    return path


@pytest.fixture
def services_file(tmp_path: Path, services: dict[int, dict[str, Any]]) -> Path:
    """The service map written as a list of records."""
    path = tmp_path / "services.json"
    path.write_text(json.dumps(list(services.values())), encoding="utf-8")
    return path


@pytest.fixture
def _isolated_project(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Run from an empty temp directory with no config discovery overrides.

    Use via ``@pytest.mark.usefixtures("_isolated_project")`` on command
    test classes.
    """
    monkeypatch.delenv("PRICEGRAPH_CONFIG", raising=False)
    monkeypatch.chdir(tmp_path)
