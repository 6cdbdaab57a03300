"""Tests for visible-field resolution, tag context and visible groups."""

from __future__ import annotations

import pytest

from pricegraph.domain.models import ConfigIndex, ServiceCapability, ServiceProps
from pricegraph.domain.normalise import normalise
from pricegraph.domain.selection import Selection
from pricegraph.domain.types import Env
from pricegraph.domain.visibility import (
    MultiGroup,
    SingleGroup,
    ancestors,
    resolve_tag_context,
    resolve_visible_group,
    select,
    trigger_set,
    visible_fields,
)
from pricegraph.infrastructure.builder import Builder


@pytest.fixture
def props() -> ServiceProps:
    return normalise(
        {
            "filters": [
                {"id": "root", "label": "Root"},
                {"id": "t1", "label": "One", "bind_id": "root", "includes": ["f_inc"], "excludes": ["f_hidden"]},
                {"id": "t2", "label": "Two", "bind_id": "t1"},
            ],
            "fields": [
                {
                    "id": "f_a",
                    "bind_id": "t1",
                    "options": [{"id": "o_a1", "service_id": 200}, {"id": "o_a2"}],
                },
                {"id": "f_b", "bind_id": "t1"},
                {"id": "f_hidden", "bind_id": "t1"},
                {"id": "f_inc"},
                {"id": "f_rev"},
                {"id": "f_btn", "bind_id": "t1", "button": True},
            ],
            "includes_for_buttons": {"o_a1": ["f_rev"], "f_btn": ["f_hidden"]},
            "excludes_for_buttons": {"o_a2": ["f_b"]},
            "order_for_tags": {"t1": ["f_inc", "f_b", "ghost"]},
        }
    )


class TestVisibleFields:
    def test_bound_and_included_with_order(self, props: ServiceProps) -> None:
        result = visible_fields(props, "t1")
        assert result.field_ids == ("f_inc", "f_b", "f_a", "f_btn")
        assert [f.id for f in result.fields] == list(result.field_ids)

    def test_selected_option_reveals(self, props: ServiceProps) -> None:
        assert visible_fields(props, "t1", ["o_a1"]).field_ids == (
            "f_inc",
            "f_b",
            "f_a",
            "f_rev",
            "f_btn",
        )

    def test_selected_option_hides(self, props: ServiceProps) -> None:
        assert visible_fields(props, "t1", ["o_a2"]).field_ids == ("f_inc", "f_a", "f_btn")

    def test_tag_exclude_beats_trigger_include(self, props: ServiceProps) -> None:
        assert "f_hidden" not in visible_fields(props, "t1", ["f_btn"]).field_ids

    def test_composite_key_selects_option(self, props: ServiceProps) -> None:
        assert "f_rev" in visible_fields(props, "t1", ["f_a::o_a1"]).field_ids

    def test_non_trigger_ids_ignored(self, props: ServiceProps) -> None:
        assert visible_fields(props, "t1", ["f_b", "nope"]) == visible_fields(props, "t1")

    def test_unknown_tag_is_empty(self, props: ServiceProps) -> None:
        result = visible_fields(props, "missing", ["o_a1"])
        assert result.field_ids == ()
        assert result.fields == ()

    def test_accepts_selection(self, props: ServiceProps) -> None:
        selection = Selection.of(["o_a1"])
        assert "f_rev" in visible_fields(props, "t1", selection).field_ids

    @pytest.mark.parametrize("selected", [(), ("o_a1",), ("o_a2", "f_btn"), ("f_a::o_a1",)])
    def test_repeated_calls_agree(self, props: ServiceProps, selected: tuple[str, ...]) -> None:
        index = ConfigIndex.of(props)
        first = visible_fields(props, "t1", selected, index=index)
        assert visible_fields(props, "t1", selected, index=index).field_ids == first.field_ids
        assert visible_fields(props, "t1", selected).field_ids == first.field_ids

    def test_builder_repeated_calls_agree(self, props: ServiceProps) -> None:
        builder = Builder()
        builder.load(props)
        first = builder.visible_fields("t1", ["o_a1", "f_btn"])
        assert builder.visible_fields("t1", ["o_a1", "f_btn"]) == first
        assert first == list(visible_fields(props, "t1", ["o_a1", "f_btn"]).field_ids)


class TestTriggerSet:
    def test_canonical_and_deduplicated(self, props: ServiceProps) -> None:
        index = ConfigIndex.of(props)
        assert trigger_set(index, ["f_a::o_a1", "o_a1", "f_btn", "f_b"]) == ["o_a1", "f_btn"]


class TestTagContext:
    def test_option_implies_owner_tag(self, props: ServiceProps) -> None:
        index = ConfigIndex.of(props)
        assert resolve_tag_context(index, Selection.of(["o_a1"])) == "t1"

    def test_selected_tag_wins(self, props: ServiceProps) -> None:
        index = ConfigIndex.of(props)
        assert resolve_tag_context(index, Selection.of(["o_a1", "t2"])) == "t2"

    def test_tracked_tag_wins(self, props: ServiceProps) -> None:
        index = ConfigIndex.of(props)
        selection = Selection.of(["o_a1"]).with_tag("t2")
        assert resolve_tag_context(index, selection) == "t2"

    def test_defaults_to_root(self, props: ServiceProps) -> None:
        index = ConfigIndex.of(props)
        assert resolve_tag_context(index, Selection()) == "root"
        assert resolve_tag_context(index, Selection.of(["f_inc"]), root_tag_id=None) is None

    def test_select_tracks_tag(self, props: ServiceProps) -> None:
        selection = select(props, Selection(), "o_a1")
        assert selection.ids == ("o_a1",)
        assert selection.primary == "o_a1"
        assert selection.current_tag == "t1"


class TestVisibleGroup:
    def test_single_group(self, props: ServiceProps) -> None:
        services = {200: ServiceCapability(id=200, rate=5.0)}
        resolved = resolve_visible_group(
            props, Selection.of(["o_a1"]), resolve_service=services.get
        )
        assert isinstance(resolved, SingleGroup)
        group = resolved.group
        assert group.tag_id == "t1"
        assert "f_rev" in group.field_ids
        assert [t.id for t in group.parent_tags] == ["root"]
        assert [t.id for t in group.children_tags] == ["t2"]
        assert [s.rate for s in group.services] == [5.0]

    def test_workspace_multi_tag_selection(self, props: ServiceProps) -> None:
        resolved = resolve_visible_group(props, Selection.of(["t1", "t2"]), env=Env.WORKSPACE)
        assert isinstance(resolved, MultiGroup)
        assert resolved.groups == ("t1", "t2")

    def test_client_ignores_multi_tag_selection(self, props: ServiceProps) -> None:
        resolved = resolve_visible_group(props, Selection.of(["t1", "t2"]), env=Env.CLIENT)
        assert isinstance(resolved, SingleGroup)
        assert resolved.group.tag_id == "t1"

    def test_ancestor_chain(self, props: ServiceProps) -> None:
        index = ConfigIndex.of(props)
        assert [t.id for t in ancestors(index, "t2")] == ["t1", "root"]


class TestSelection:
    def test_insertion_order_and_dedup(self) -> None:
        selection = Selection.of(["b", "a", "b"])
        assert selection.ids == ("b", "a")
        assert selection.primary == "b"

    def test_toggle_and_remove_primary(self) -> None:
        selection = Selection.of(["a", "b"]).toggle("a")
        assert selection.ids == ("b",)
        assert selection.primary == "b"
        assert selection.toggle("c").ids == ("b", "c")

    def test_replace_and_clear(self) -> None:
        selection = Selection.of(["a", "b"])
        assert selection.replace_with("c").ids == ("c",)
        assert selection.replace_with(None).ids == ()
        assert len(selection.clear()) == 0
