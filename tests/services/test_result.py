"""Tests for ServiceResult and ServiceError."""

from __future__ import annotations

import json

import pytest
from pydantic import ValidationError

from pricegraph.infrastructure.builder import Builder
from pricegraph.services.fallback import FallbackService
from pricegraph.services.resolve import ResolveService
from pricegraph.services.result import ErrorCode, ServiceError, ServiceResult
from pricegraph.services.simulation import SimulationService


class TestServiceResult:
    def test_success_construction(self) -> None:
        result = ServiceResult(ok=True, op="visible", data={"field_ids": ["f_plan"]})
        assert result.ok is True
        assert result.op == "visible"
        assert result.data == {"field_ids": ["f_plan"]}
        assert result.warnings == []
        assert result.error is None
        assert result.meta is None

    def test_error_construction(self) -> None:
        error = ServiceError(code="NOT_FOUND", message="Tag not found: x")
        result = ServiceResult(ok=False, op="visible", error=error)
        assert result.ok is False
        assert result.error.code == "NOT_FOUND"
        assert result.error.detail == {}

    def test_json_serialization(self) -> None:
        result = ServiceResult(ok=True, op="lint", data={"count": 0}, meta={"nodes": 3})
        parsed = json.loads(result.model_dump_json())
        assert parsed["ok"] is True
        assert parsed["data"]["count"] == 0
        assert parsed["meta"]["nodes"] == 3

    def test_frozen(self) -> None:
        result = ServiceResult(ok=True, op="lint")
        with pytest.raises(ValidationError):
            result.ok = False  # type: ignore[misc]


class TestServiceError:
    def test_with_detail(self) -> None:
        error = ServiceError(code="COMMAND_REJECTED", message="cycle", detail={"reason": "cycle"})
        assert error.detail["reason"] == "cycle"


class TestFailure:
    def test_failure_carries_code_and_detail(self) -> None:
        result = ServiceResult.failure(
            "apply", ErrorCode.COMMAND_REJECTED, "cycle", reason="cycle"
        )
        assert result.ok is False
        assert result.op == "apply"
        assert result.error == ServiceError(
            code="COMMAND_REJECTED", message="cycle", detail={"reason": "cycle"}
        )

    def test_code_serializes_as_plain_string(self) -> None:
        result = ServiceResult.failure("undo", ErrorCode.NOTHING_TO_UNDO, "Nothing to undo")
        parsed = json.loads(result.model_dump_json())
        assert parsed["error"]["code"] == "NOTHING_TO_UNDO"
        assert parsed["error"]["detail"] == {}

    def test_unknown_tag(self) -> None:
        result = ServiceResult.unknown_tag("visible", "t_missing")
        assert result.error.code == ErrorCode.NOT_FOUND
        assert result.error.message == "Tag not found: t_missing"
        assert result.error.detail == {"tag_id": "t_missing"}


class TestServiceErrorCodes:
    def test_unknown_tag_from_each_service(self, builder: Builder) -> None:
        results = [
            ResolveService(builder).visible("t_missing"),
            ResolveService(builder).compose(["o_basic"], tag_id="t_missing"),
            SimulationService(builder).simulate(tag_id="t_missing"),
            FallbackService(builder).check_candidates([300], tag_id="t_missing"),
        ]
        assert {r.error.code for r in results} == {"NOT_FOUND"}
        assert all(r.error.detail == {"tag_id": "t_missing"} for r in results)
