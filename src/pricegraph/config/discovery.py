"""Locating and reading pricegraph settings files.

A project keeps its settings in ``pricegraph.toml`` or in the
``[tool.pricegraph]`` table of ``pyproject.toml``. Discovery walks up from
the working directory; ``PRICEGRAPH_CONFIG`` names a file directly.
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any

from pricegraph.config.models import PricegraphConfig

CONFIG_FILENAME = "pricegraph.toml"
PYPROJECT_FILENAME = "pyproject.toml"
CONFIG_ENV_VAR = "PRICEGRAPH_CONFIG"


def _has_tool_table(pyproject: Path) -> bool:
    try:
        data = tomllib.loads(pyproject.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError:
        return False
    return isinstance(data.get("tool", {}).get("pricegraph"), dict)


def find_config(start: Path | None = None) -> Path | None:
    """Nearest settings file at or above *start* (default: cwd).

    In each directory ``pricegraph.toml`` wins over a ``pyproject.toml``
    carrying ``[tool.pricegraph]``. ``PRICEGRAPH_CONFIG`` skips the walk;
    a value naming no file means no settings file.
    """
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        p = Path(env_path)
        return p if p.is_file() else None

    here = (start or Path.cwd()).resolve()
    for directory in (here, *here.parents):
        candidate = directory / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
        pyproject = directory / PYPROJECT_FILENAME
        if pyproject.is_file() and _has_tool_table(pyproject):
            return pyproject
    return None


def read_config_table(path: Path) -> dict[str, Any]:
    """The pricegraph sections stored in *path*.

    Raises:
        tomllib.TOMLDecodeError: If *path* is not valid TOML.
    """
    data: dict[str, Any] = tomllib.loads(path.read_text(encoding="utf-8"))
    if path.name == PYPROJECT_FILENAME:
        table = data.get("tool", {}).get("pricegraph", {})
        return table if isinstance(table, dict) else {}
    return data


def load_config(path: Path | None = None, cwd: Path | None = None) -> PricegraphConfig:
    """Validated sections for library callers that bypass the CLI settings.

    Defaults are returned when no settings file is found.
    """
    if path is None:
        path = find_config(cwd)
    if path is None:
        return PricegraphConfig()
    return PricegraphConfig.model_validate(read_config_table(path))
