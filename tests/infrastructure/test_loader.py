"""Tests for reading documents and service maps."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from pricegraph.domain.errors import InvalidConfigError
from pricegraph.infrastructure.loader import read_document, read_service_map


class TestReadDocument:
    def test_json(self, document_file: Path) -> None:
        data = read_document(document_file)
        assert data["filters"][1]["id"] == "t_web"

    def test_toml(self, tmp_path: Path) -> None:
        path = tmp_path / "config.toml"
        path.write_text(
            '[[filters]]\nid = "root"\nlabel = "Root"\n\n'
            '[[fields]]\nid = "f"\nbind_id = "root"\n',
            encoding="utf-8",
        )
        data = read_document(path)
        assert data["fields"] == [{"id": "f", "bind_id": "root"}]

    def test_invalid_json(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(InvalidConfigError) as excinfo:
            read_document(path)
        assert excinfo.value.issues[0].startswith("broken.json:")

    def test_invalid_toml(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.toml"
        path.write_text("filters = [", encoding="utf-8")
        with pytest.raises(InvalidConfigError):
            read_document(path)

    def test_top_level_must_be_object(self, tmp_path: Path) -> None:
        path = tmp_path / "list.json"
        path.write_text("[1, 2]", encoding="utf-8")
        with pytest.raises(InvalidConfigError, match="top level must be an object"):
            read_document(path)


class TestReadServiceMap:
    def test_list_keyed_by_id(self, services_file: Path) -> None:
        data = read_service_map(services_file)
        assert sorted(data) == ["100", "200", "210", "300", "301", "302"]
        assert data["302"]["rate"] == 8.0

    def test_records_without_id_skipped(self, tmp_path: Path) -> None:
        path = tmp_path / "services.json"
        path.write_text(json.dumps([{"id": 1}, {"rate": 2}, "junk"]), encoding="utf-8")
        assert read_service_map(path) == {"1": {"id": 1}}

    def test_object_passthrough(self, tmp_path: Path) -> None:
        path = tmp_path / "services.json"
        path.write_text(json.dumps({"7": {"rate": 1.5}}), encoding="utf-8")
        assert read_service_map(path) == {"7": {"rate": 1.5}}

    @pytest.mark.parametrize("content", ["42", "{nope"])
    def test_bad_shapes(self, tmp_path: Path, content: str) -> None:
        path = tmp_path / "services.json"
        path.write_text(content, encoding="utf-8")
        with pytest.raises(InvalidConfigError):
            read_service_map(path)
