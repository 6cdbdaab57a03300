"""Tests for operation-specific Rich renderers."""

from pricegraph.output.renderers import render_quiet, render_result
from pricegraph.services.result import ServiceError, ServiceResult

# ── Helpers ───────────────────────────────────────────────────────────


def _ok(op: str, **data: object) -> ServiceResult:
    return ServiceResult(ok=True, op=op, data=dict(data))


def _err(op: str, code: str, message: str, **detail: object) -> ServiceResult:
    return ServiceResult(
        ok=False,
        op=op,
        error=ServiceError(code=code, message=message, detail=dict(detail)),
    )


# ── Error rendering ──────────────────────────────────────────────────


class TestErrorRenderer:
    def test_basic_error(self) -> None:
        output = render_result(_err("visible", "NOT_FOUND", "Tag not found: nope"))
        assert "ERROR" in output
        assert "visible" in output
        assert "Tag not found: nope" in output
        assert "code: NOT_FOUND" in output

    def test_verbose_shows_detail(self) -> None:
        output = render_result(_err("visible", "NOT_FOUND", "Bad", tag_id="nope"), verbose=True)
        assert "detail" in output
        assert "tag_id: nope" in output

    def test_markup_in_message_is_literal(self) -> None:
        output = render_result(_err("apply", "COMMAND_REJECTED", "bad [bold]id[/bold]"))
        assert "bad [bold]id[/bold]" in output

    def test_no_error_object(self) -> None:
        output = render_result(ServiceResult(ok=False, op="test"))
        assert "Unknown error" in output


# ── Lint ─────────────────────────────────────────────────────────────


class TestLintRenderer:
    def test_clean(self) -> None:
        output = render_result(_ok("lint", issues=[], errors=0, warnings=0))
        assert "No issues found" in output

    def test_grouped_issues(self) -> None:
        issues = [
            {
                "category": "unbound",
                "severity": "warning",
                "code": "field_unbound",
                "node_id": "f_support",
                "message": "Field 'f_support' is not bound",
                "detail": {},
            },
            {
                "category": "utility",
                "severity": "error",
                "code": "utility_without_base",
                "node_id": None,
                "message": "No base service",
                "detail": {"scope": "global"},
            },
        ]
        output = render_result(_ok("lint", issues=issues, errors=1, warnings=1), verbose=True)
        assert "unbound" in output
        assert "[f_support] field_unbound" in output
        assert "utility_without_base: No base service" in output
        assert '"scope": "global"' in output
        assert "1 errors, 1 warnings" in output


# ── Resolution ───────────────────────────────────────────────────────


class TestResolutionRenderers:
    def test_visible(self) -> None:
        fields = [
            {"id": "f_plan", "label": "Plan", "type": "select", "button": False, "options": ["o_basic"]},
            {"id": "f_go", "label": "Go", "type": "", "button": True, "options": []},
        ]
        output = render_result(_ok("visible", tag_id="t_web", selection=["o_basic"], fields=fields))
        assert "t_web" in output
        assert "f_plan" in output
        assert "o_basic" in output
        assert "button" in output

    def test_compose(self) -> None:
        services = [
            {"id": 200, "rate": 10.0, "role": "base", "source_id": "o_basic"},
            {"id": 300, "rate": None, "role": "addon", "source_id": "o_support"},
        ]
        output = render_result(_ok("compose", tag_id="t_web", services=services))
        assert "200" in output
        assert "addon" in output
        assert "o_support" in output

    def test_simulate_clean(self) -> None:
        output = render_result(_ok("simulate", policy="lte_primary", diagnostics=[], count=0))
        assert "Rates coherent under lte_primary" in output

    def test_simulate_offenders(self) -> None:
        diag = {
            "tag_id": "t_web",
            "simulation_anchor": {"id": "o_pro"},
            "primary": {"id": "o_basic", "rate": 10.0},
            "offender": {"id": "o_pro", "rate": 12.0},
            "reason": "rate above primary",
        }
        output = render_result(_ok("simulate", policy="lte_primary", diagnostics=[diag], count=1))
        assert "o_pro (12)" in output
        assert "1 rate violations" in output


# ── Fallbacks ────────────────────────────────────────────────────────


class TestFallbackRenderers:
    def test_candidates(self) -> None:
        checks = [
            {"id": 302, "ok": True, "rate": 8.0, "reasons": []},
            {"id": 301, "ok": False, "rate": 9.0, "reasons": ["constraint_mismatch"]},
        ]
        output = render_result(
            _ok("check_candidates", tag_id="t_web", used_service_ids=[200], candidates=checks)
        )
        assert "302" in output
        assert "constraint_mismatch" in output

    def test_failed_none(self) -> None:
        output = render_result(_ok("failed_fallbacks", failures=[], count=0))
        assert "All authored fallbacks are usable" in output

    def test_failed_listed(self) -> None:
        failure = {"scope": "node", "node_id": "o_basic", "primary": 200, "candidate": 301, "reason": "cycle"}
        output = render_result(_ok("failed_fallbacks", failures=[failure], count=1))
        assert "o_basic" in output
        assert "1 unusable fallbacks" in output


# ── Graph ────────────────────────────────────────────────────────────


class TestTreeRenderer:
    def test_outline(self) -> None:
        nodes = [
            {"id": "root", "kind": "tag", "label": "Root"},
            {"id": "t_web", "kind": "tag", "label": "Web", "service_id": 100},
            {"id": "f_plan", "kind": "field", "label": "Plan"},
        ]
        edges = [
            {"from": "root", "to": "t_web", "edge_type": "child"},
            {"from": "t_web", "to": "f_plan", "edge_type": "bind"},
        ]
        lines = render_result(_ok("tree", nodes=nodes, edges=edges), verbose=True).splitlines()
        assert lines[0] == "tag root Root"
        assert lines[1] == "  tag t_web Web  service=100"
        assert lines[2] == "    field f_plan Plan"
        assert lines[-1] == "3 nodes, 2 edges"


# ── Generic and quiet ────────────────────────────────────────────────


class TestGenericRenderer:
    def test_nested_values_as_json(self) -> None:
        output = render_result(_ok("history", entries=[{"name": "edit_label"}], index=0))
        assert '[{"name":"edit_label"}]' in output
        assert "index: 0" in output


class TestQuiet:
    def test_eligible(self) -> None:
        assert render_quiet(_ok("eligible_fallbacks", eligible=[302])) == "302"
