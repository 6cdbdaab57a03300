"""GraphEngine: lazy-built NetworkX view of one configuration revision.

Built on first access, never cached across revisions. Nodes are tags,
fields and options; edges carry an ``edge_type`` of ``child``, ``bind``,
``option``, ``include`` or ``exclude``.
"""

from __future__ import annotations

from typing import Any

import networkx as nx

from pricegraph.domain.models import ServiceProps

type _Graph = nx.MultiDiGraph


class GraphEngine:
    """Lazy-loading graph engine over a ServiceProps revision."""

    def __init__(self, props: ServiceProps) -> None:
        self._props = props
        self._graph: _Graph | None = None

    @property
    def graph(self) -> _Graph:
        """Return the graph, building it on first access."""
        if self._graph is None:
            self._graph = self._build()
        return self._graph

    def _build(self) -> _Graph:
        """Add every node first so dangling references never create phantom nodes."""
        g: _Graph = nx.MultiDiGraph()
        props = self._props
        for tag in props.filters:
            g.add_node(tag.id, kind="tag", label=tag.label, service_id=tag.service_id)
        for fld in props.fields:
            g.add_node(
                fld.id,
                kind="field",
                label=fld.label,
                button=fld.button,
                pricing_role=fld.pricing_role.value,
                service_id=fld.service_id,
            )
            for opt in fld.options:
                g.add_node(
                    opt.id,
                    kind="option",
                    label=opt.label,
                    pricing_role=opt.pricing_role.value,
                    service_id=opt.service_id,
                )

        def link(source: str | None, target: str, edge_type: str) -> None:
            if source is not None and source in g and target in g:
                g.add_edge(source, target, edge_type=edge_type)

        for tag in props.filters:
            link(tag.bind_id, tag.id, "child")
            for field_id in tag.includes:
                link(tag.id, field_id, "include")
            for field_id in tag.excludes:
                link(tag.id, field_id, "exclude")
        for fld in props.fields:
            for tag_id in fld.bind_ids:
                link(tag_id, fld.id, "bind")
            for opt in fld.options:
                link(fld.id, opt.id, "option")
        for trigger, targets in props.includes_for_buttons.items():
            for field_id in targets:
                link(trigger, field_id, "include")
        for trigger, targets in props.excludes_for_buttons.items():
            for field_id in targets:
                link(trigger, field_id, "exclude")
        return g

    def tag_tree(self) -> nx.DiGraph:
        """Tag-only subgraph of ``child`` edges."""
        tree = nx.DiGraph()
        for node, data in self.graph.nodes(data=True):
            if data["kind"] == "tag":
                tree.add_node(node)
        for source, target, data in self.graph.edges(data=True):
            if data["edge_type"] == "child":
                tree.add_edge(source, target)
        return tree

    def tag_cycles(self) -> list[list[str]]:
        """Every elementary cycle in the tag bind relation."""
        return [sorted(cycle) for cycle in nx.simple_cycles(self.tag_tree())]

    def snapshot(self) -> dict[str, Any]:
        """JSON-ready ``{nodes, edges}`` listing in insertion order."""
        return {
            "nodes": [{"id": node, **data} for node, data in self.graph.nodes(data=True)],
            "edges": [
                {"from": source, "to": target, "edge_type": data["edge_type"]}
                for source, target, data in self.graph.edges(data=True)
            ],
        }
