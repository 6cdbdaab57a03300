"""Reading configuration documents and service maps from disk.

Documents may be JSON or TOML (by suffix); service maps are JSON objects
keyed by service id, or a list of capability records each carrying ``id``.
"""

from __future__ import annotations

import json
import logging
import tomllib
from pathlib import Path
from typing import Any

from pricegraph.domain.errors import InvalidConfigError

logger = logging.getLogger(__name__)

TOML_SUFFIXES = frozenset({".toml"})


def read_document(path: Path) -> dict[str, Any]:
    """Parse *path* as TOML or JSON and return the top-level mapping.

    Raises:
        InvalidConfigError: If the file cannot be parsed or is not a mapping.
    """
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() in TOML_SUFFIXES:
            data: Any = tomllib.loads(text)
        else:
            data = json.loads(text)
    except (tomllib.TOMLDecodeError, json.JSONDecodeError) as exc:
        raise InvalidConfigError([f"{path.name}: {exc}"]) from exc
    if not isinstance(data, dict):
        raise InvalidConfigError([f"{path.name}: top level must be an object"])
    logger.debug("Read document %s (%d keys)", path, len(data))
    return data


def read_service_map(path: Path) -> dict[str, Any]:
    """Read a service-capability map.

    A list of records is keyed by each record's ``id``; records without one
    are skipped.

    Raises:
        InvalidConfigError: If the file is not JSON or has the wrong shape.
    """
    try:
        data: Any = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise InvalidConfigError([f"{path.name}: {exc}"]) from exc

    if isinstance(data, list):
        out: dict[str, Any] = {}
        for record in data:
            if isinstance(record, dict) and record.get("id") is not None:
                out[str(record["id"])] = record
            else:
                logger.debug("Skipping service record without id in %s", path)
        return out
    if isinstance(data, dict):
        return data
    raise InvalidConfigError([f"{path.name}: services must be an object or a list"])
