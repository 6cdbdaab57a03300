"""Operation-specific Rich renderers for ServiceResult.

Renderers are dispatched by ``result.op`` in :func:`render_result`.
Unknown ops fall through to a generic key-value renderer.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from rich.markup import escape
from rich.table import Table
from rich.text import Text

from pricegraph.output.console import create_console, get_output, style_for_kind

if TYPE_CHECKING:
    from rich.console import Console

    from pricegraph.services.result import ServiceResult


# ── Public API ────────────────────────────────────────────────────────


def render_result(result: ServiceResult, *, verbose: bool = False) -> str:
    """Render a ServiceResult to a styled string via Rich."""
    console = create_console()

    if result.ok:
        renderer = _OP_RENDERERS.get(result.op, _render_generic)
        renderer(result, console, verbose=verbose)
    else:
        _render_error(result, console, verbose=verbose)

    return get_output(console).rstrip("\n")


def render_quiet(result: ServiceResult) -> str:
    """Minimal output for ``--quiet``: ids one per line, or the status."""
    if not result.ok:
        msg = result.error.message if result.error else "Unknown error"
        return f"ERROR: {result.op}: {msg}"
    for key in ("field_ids", "service_ids", "eligible"):
        ids = result.data.get(key)
        if isinstance(ids, list):
            return "\n".join(str(i) for i in ids)
    if "count" in result.data:
        return str(result.data["count"])
    return f"OK: {result.op}"


# ── Helpers ───────────────────────────────────────────────────────────


def _status_line(console: Console, result: ServiceResult) -> None:
    console.print(Text("OK", style="pg.ok"), Text(f"  {result.op}", style="pg.op"))


def _field(console: Console, key: str, value: Any) -> None:
    k = Text(f"  {key}: ", style="pg.key")
    style = "pg.id" if key == "id" or key.endswith("_id") else ""
    console.print(k, Text(str(value), style=style))


def _render_meta(console: Console, result: ServiceResult) -> None:
    """Meta block including the telemetry span tree (verbose only)."""
    if not result.meta:
        return
    console.print()
    console.print(Text("  meta:", style="dim"))
    for k, v in result.meta.items():
        if k == "telemetry":
            _render_telemetry_tree(console, v, indent=4)
        else:
            console.print(f"    {k}: {v}")


def _render_telemetry_tree(console: Console, span_data: dict[str, Any], indent: int = 4) -> None:
    prefix = " " * indent
    duration = span_data.get("duration_ms", 0.0)
    if duration > 1000:
        style = "bold red"
    elif duration > 100:
        style = "yellow"
    else:
        style = "dim"
    line = f"{prefix}[{style}]{duration:>8.2f}ms[/{style}]  {span_data.get('name', '?')}"
    annotations = span_data.get("annotations") or {}
    if annotations:
        line += "  (" + ", ".join(f"{k}={v}" for k, v in annotations.items()) + ")"
    console.print(line)
    for child in span_data.get("children", []):
        _render_telemetry_tree(console, child, indent=indent + 4)


# ── Error renderer ────────────────────────────────────────────────────


def _render_error(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    err = result.error
    msg = err.message if err else "Unknown error"
    console.print(Text("ERROR", style="pg.error"), Text(f"  {result.op}", style="pg.op"), f": {escape(msg)}")
    if err is not None:
        console.print(Text(f"  code: {err.code}", style="dim"))
    if verbose and err and err.detail:
        console.print(Text("  detail:", style="dim"))
        for k, v in err.detail.items():
            console.print(f"    {k}: {v}")


# ── Lint ──────────────────────────────────────────────────────────────


def _render_lint(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Issues grouped by category, then an error/warning tally."""
    issues = result.data.get("issues", [])
    if not issues:
        console.print("[pg.ok]OK[/pg.ok]  No issues found.")
        return

    severity_styles = {"error": "pg.error", "warning": "pg.warning"}
    by_category: dict[str, list[dict[str, Any]]] = {}
    for issue in issues:
        by_category.setdefault(str(issue.get("category", "unknown")), []).append(issue)

    for cat, cat_issues in by_category.items():
        console.print(f"\n[bold]{cat}[/bold]")
        for issue in cat_issues:
            sev = str(issue.get("severity", "warning"))
            style = severity_styles.get(sev, "")
            prefix = f"[{style}]{sev}[/{style}]" if style else sev
            node_id = issue.get("node_id")
            nid = f" \\[{node_id}]" if node_id else ""
            console.print(f"  {prefix}{nid} {issue.get('code', '')}: {escape(str(issue.get('message', '')))}")
            if verbose and issue.get("detail"):
                console.print(f"    detail: {json.dumps(issue['detail'], default=str)}")

    console.print(f"\n{result.data.get('errors', 0)} errors, {result.data.get('warnings', 0)} warnings")
    if verbose:
        _render_meta(console, result)


# ── Resolution ────────────────────────────────────────────────────────


def _render_visible(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    d = result.data
    _status_line(console, result)
    _field(console, "tag_id", d.get("tag_id"))
    if d.get("selection"):
        _field(console, "selection", ", ".join(d["selection"]))
    table = Table(show_header=True, pad_edge=False, expand=False)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Field", style="pg.id", no_wrap=True)
    table.add_column("Label")
    table.add_column("Type")
    table.add_column("Options")
    for pos, fld in enumerate(d.get("fields", []), start=1):
        kind = "button" if fld.get("button") else str(fld.get("type", ""))
        table.add_row(str(pos), fld["id"], fld.get("label", ""), kind, ", ".join(fld.get("options", [])))
    console.print(table)
    if verbose:
        _render_meta(console, result)


def _render_compose(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    d = result.data
    _status_line(console, result)
    _field(console, "tag_id", d.get("tag_id"))
    table = Table(show_header=True, pad_edge=False, expand=False)
    table.add_column("Slot", justify="right", style="dim")
    table.add_column("Service", style="pg.id")
    table.add_column("Rate", style="pg.rate", justify="right")
    table.add_column("Role")
    table.add_column("Source")
    for slot, svc in enumerate(d.get("services", [])):
        rate = svc.get("rate")
        table.add_row(
            str(slot),
            str(svc["id"]),
            "" if rate is None else f"{rate:g}",
            str(svc.get("role", "")),
            str(svc.get("source_id", "")),
        )
    console.print(table)
    if verbose:
        _render_meta(console, result)


def _render_simulate(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    d = result.data
    diagnostics = d.get("diagnostics", [])
    if not diagnostics:
        console.print(f"[pg.ok]OK[/pg.ok]  Rates coherent under {d.get('policy')}.")
        return
    table = Table(show_header=True, pad_edge=False, expand=False)
    table.add_column("Tag", style="pg.id")
    table.add_column("Anchor")
    table.add_column("Primary", justify="right")
    table.add_column("Offender", justify="right", style="pg.error")
    table.add_column("Reason")
    for diag in diagnostics:
        primary = diag["primary"]
        offender = diag["offender"]
        table.add_row(
            str(diag["tag_id"]),
            str(diag["simulation_anchor"]["id"]),
            f"{primary['id']} ({primary['rate']:g})",
            f"{offender['id']} ({offender['rate']:g})",
            str(diag["reason"]),
        )
    console.print(table)
    console.print(f"\n{d.get('count', len(diagnostics))} rate violations ({d.get('policy')})")
    if verbose:
        _render_meta(console, result)


# ── Fallbacks ─────────────────────────────────────────────────────────


def _render_candidates(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    d = result.data
    _status_line(console, result)
    _field(console, "tag_id", d.get("tag_id"))
    _field(console, "used", ", ".join(str(s) for s in d.get("used_service_ids", [])))
    table = Table(show_header=True, pad_edge=False, expand=False)
    table.add_column("Candidate", style="pg.id")
    table.add_column("OK")
    table.add_column("Rate", justify="right", style="pg.rate")
    table.add_column("Reasons")
    for check in d.get("candidates", []):
        ok = "[pg.ok]yes[/pg.ok]" if check["ok"] else "[pg.error]no[/pg.error]"
        rate = check.get("rate")
        table.add_row(
            str(check["id"]), ok, "" if rate is None else f"{rate:g}", ", ".join(check["reasons"])
        )
    console.print(table)
    if verbose:
        _render_meta(console, result)


def _render_failed_fallbacks(
    result: ServiceResult, console: Console, *, verbose: bool = False
) -> None:
    failures = result.data.get("failures", [])
    if not failures:
        console.print("[pg.ok]OK[/pg.ok]  All authored fallbacks are usable.")
        return
    table = Table(show_header=True, pad_edge=False, expand=False)
    table.add_column("Scope")
    table.add_column("Node", style="pg.id")
    table.add_column("Primary", justify="right")
    table.add_column("Candidate", justify="right")
    table.add_column("Reason", style="pg.warning")
    for f in failures:
        table.add_row(
            f["scope"],
            str(f.get("node_id") or ""),
            str(f.get("primary") or ""),
            str(f.get("candidate") or ""),
            f["reason"],
        )
    console.print(table)
    console.print(f"\n{result.data.get('count', len(failures))} unusable fallbacks")


# ── Graph ─────────────────────────────────────────────────────────────


def _render_tree(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Tags with their children, bound fields and options as an indented outline."""
    nodes = {node["id"]: node for node in result.data.get("nodes", [])}
    edges = result.data.get("edges", [])
    below: dict[str, list[tuple[str, str]]] = {}
    has_parent: set[str] = set()
    for edge in edges:
        if edge["edge_type"] in ("child", "bind", "option"):
            below.setdefault(edge["from"], []).append((edge["to"], edge["edge_type"]))
            if edge["edge_type"] == "child":
                has_parent.add(edge["to"])

    seen: set[str] = set()

    def walk(node_id: str, depth: int) -> None:
        node = nodes[node_id]
        style = style_for_kind(node["kind"])
        label = escape(node.get("label") or "")
        service = node.get("service_id")
        suffix = f"  service={service}" if service is not None else ""
        console.print(f"{'  ' * depth}[{style}]{node['kind']}[/{style}] {node_id} {label}{suffix}")
        if node_id in seen:
            return
        seen.add(node_id)
        for child_id, _edge_type in below.get(node_id, []):
            walk(child_id, depth + 1)

    for node_id, node in nodes.items():
        if node["kind"] == "tag" and node_id not in has_parent:
            walk(node_id, 0)
    if verbose:
        console.print(f"\n{len(nodes)} nodes, {len(edges)} edges")


def _render_generic(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Fallback renderer: status line + all data as key-value pairs."""
    _status_line(console, result)
    for key, value in result.data.items():
        if isinstance(value, (dict, list)):
            _field(console, key, json.dumps(value, separators=(",", ":"), default=str))
        else:
            _field(console, key, value)
    if verbose:
        _render_meta(console, result)


# ── Dispatch table ────────────────────────────────────────────────────

_OP_RENDERERS: dict[str, Any] = {
    "lint": _render_lint,
    "visible": _render_visible,
    "compose": _render_compose,
    "simulate": _render_simulate,
    "check_candidates": _render_candidates,
    "failed_fallbacks": _render_failed_fallbacks,
    "tree": _render_tree,
}
