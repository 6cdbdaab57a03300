"""Tests for EditService."""

from __future__ import annotations

from typing import Any

from pricegraph.domain.commands import EditLabel
from pricegraph.infrastructure.builder import Builder
from pricegraph.services.edit import EditService


class TestLoad:
    def test_load(self, document: dict[str, Any]) -> None:
        result = EditService(Builder()).load(document)
        assert result.ok
        assert result.data == {"tags": 2, "fields": 3}

    def test_invalid_config(self) -> None:
        result = EditService(Builder()).load({"fields": [{"id": "f", "bind_id": "ghost"}]})
        assert result.ok is False
        assert result.error.code == "INVALID_CONFIG"
        assert result.error.detail["issues"] == ["field 'f' binds to unknown tag 'ghost'"]


class TestApply:
    def test_command_object(self, builder: Builder) -> None:
        result = EditService(builder).apply(EditLabel(node_id="f_notes", label="Comments"))
        assert result.ok
        assert result.data == {
            "changed": True,
            "command": "edit_label",
            "sections": ["fields"],
            "stack_size": 1,
            "index": 0,
        }

    def test_dumped_command(self, builder: Builder) -> None:
        payload = {"command": "connect", "kind": "exclude", "from_id": "t_web", "to_id": "f_notes"}
        result = EditService(builder).apply(payload)
        assert result.data["command"] == "connect:exclude"
        assert builder.index.tag("t_web").excludes == ("f_notes",)

    def test_no_op(self, builder: Builder) -> None:
        result = EditService(builder).apply(EditLabel(node_id="f_notes", label="Notes"))
        assert result.ok
        assert result.data["changed"] is False
        assert result.data["command"] is None

    def test_rejected(self, builder: Builder) -> None:
        result = EditService(builder).apply({"command": "remove_tag", "tag_id": "root"})
        assert result.ok is False
        assert result.error.code == "COMMAND_REJECTED"
        assert result.error.detail == {"reason": "root_protected"}

    def test_not_found(self, builder: Builder) -> None:
        result = EditService(builder).apply({"command": "remove_field", "field_id": "ghost"})
        assert result.error.code == "NOT_FOUND"

    def test_invalid_payload(self, builder: Builder) -> None:
        result = EditService(builder).apply({"command": "teleport"})
        assert result.error.code == "COMMAND_REJECTED"
        assert result.error.detail == {"reason": "invalid_command"}


class TestUndoRedo:
    def test_round_trip(self, builder: Builder) -> None:
        service = EditService(builder)
        service.apply(EditLabel(node_id="f_notes", label="Comments"))
        undone = service.undo()
        assert undone.ok
        assert undone.data["index"] == -1
        assert builder.index.field("f_notes").label == "Notes"
        redone = service.redo()
        assert redone.data["index"] == 0
        assert builder.index.field("f_notes").label == "Comments"

    def test_nothing_to_undo_or_redo(self, builder: Builder) -> None:
        service = EditService(builder)
        assert service.undo().error.code == "NOTHING_TO_UNDO"
        assert service.redo().error.code == "NOTHING_TO_REDO"

    def test_history(self, builder: Builder) -> None:
        service = EditService(builder)
        service.apply(EditLabel(node_id="f_notes", label="Comments"))
        service.undo()
        data = service.history().data
        assert [e["name"] for e in data["entries"]] == ["edit_label"]
        assert data["entries"][0]["command"]["label"] == "Comments"
        assert data["index"] == -1
        assert data["can_undo"] is False
        assert data["can_redo"] is True
