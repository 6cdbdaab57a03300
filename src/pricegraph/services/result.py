"""ServiceResult and ServiceError: what every pricegraph service returns.

INVARIANT: service operations never raise for a bad document, an unknown
id or a rejected command. They return ``ServiceResult(ok=False)`` carrying
one of the ``ErrorCode`` values; the CLI maps that to exit status 1.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class ErrorCode(StrEnum):
    """Stable ``error.code`` values shown in JSON output."""

    INVALID_CONFIG = "INVALID_CONFIG"
    NOT_FOUND = "NOT_FOUND"
    COMMAND_REJECTED = "COMMAND_REJECTED"
    NOTHING_TO_UNDO = "NOTHING_TO_UNDO"
    NOTHING_TO_REDO = "NOTHING_TO_REDO"


class ServiceError(BaseModel):
    """Structured error payload within a ServiceResult."""

    model_config = {"frozen": True}

    code: str
    message: str
    detail: dict[str, Any] = Field(default_factory=dict)


class ServiceResult(BaseModel):
    """Return type for all service operations.

    Attributes:
        ok: Whether the operation succeeded.
        op: Operation name (``"visible"``, ``"apply"``, ``"lint"``).
        data: Operation-specific payload on success.
        warnings: Non-fatal notes, e.g. normalisation fixes on load.
        error: Structured error if ``ok`` is False.
        meta: Timing spans under ``"telemetry"`` when enabled.
    """

    model_config = {"frozen": True}

    ok: bool
    op: str
    data: dict[str, Any] = Field(default_factory=dict)
    warnings: list[str] = Field(default_factory=list)
    error: ServiceError | None = None
    meta: dict[str, Any] | None = None

    @classmethod
    def failure(cls, op: str, code: ErrorCode, message: str, **detail: Any) -> ServiceResult:
        return cls(
            ok=False,
            op=op,
            error=ServiceError(code=str(code), message=message, detail=detail),
        )

    @classmethod
    def unknown_tag(cls, op: str, tag_id: str) -> ServiceResult:
        return cls.failure(op, ErrorCode.NOT_FOUND, f"Tag not found: {tag_id}", tag_id=tag_id)
