"""Service timing: ``@traced`` on service operations, ``trace_span`` inside them.

Off by default; ``--verbose`` switches it on for the process. A traced
operation that returns a ServiceResult gets its span tree under
``meta["telemetry"]``. Spans opened outside a traced operation are no-ops.
"""

from __future__ import annotations

import functools
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, ParamSpec, TypeVar

import structlog

from pricegraph.services.result import ServiceResult

_enabled: ContextVar[bool] = ContextVar("pricegraph_telemetry", default=False)
_active: ContextVar[Span | None] = ContextVar("pricegraph_span", default=None)

log = structlog.get_logger("pricegraph.telemetry")


@dataclass
class Span:
    """One timed step; ``attrs`` name what the step worked on (tag, category)."""

    name: str
    attrs: dict[str, Any] = field(default_factory=dict)
    children: list[Span] = field(default_factory=list)
    started: float = field(default_factory=time.perf_counter)
    finished: float | None = None

    @property
    def duration_ms(self) -> float:
        if self.finished is None:
            return 0.0
        return (self.finished - self.started) * 1000

    def close(self) -> None:
        self.finished = time.perf_counter()

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"name": self.name, "duration_ms": round(self.duration_ms, 2)}
        if self.attrs:
            out["attrs"] = dict(self.attrs)
        if self.children:
            out["children"] = [child.to_dict() for child in self.children]
        return out


def enable_telemetry(on: bool = True) -> None:
    _enabled.set(on)


@contextmanager
def trace_span(name: str, **attrs: Any) -> Iterator[Span | None]:
    """Time a step of the running traced operation as a child span."""
    parent = _active.get() if _enabled.get() else None
    if parent is None:
        yield None
        return

    span = Span(name=name, attrs=attrs)
    parent.children.append(span)
    token = _active.set(span)
    try:
        yield span
    finally:
        span.close()
        _active.reset(token)


_P = ParamSpec("_P")
_R = TypeVar("_R")


def traced(func: Callable[_P, _R]) -> Callable[_P, _R]:  # noqa: UP047
    """Time a service operation and attach its span tree to the returned result."""

    @functools.wraps(func)
    def wrapper(*args: _P.args, **kwargs: _P.kwargs) -> _R:
        if not _enabled.get():
            return func(*args, **kwargs)

        span = Span(name=func.__qualname__)
        token = _active.set(span)
        ok = False
        try:
            result = func(*args, **kwargs)
            ok = True
        finally:
            span.close()
            _active.reset(token)
            log.debug(
                "operation.timed",
                op=span.name,
                duration_ms=round(span.duration_ms, 2),
                steps=len(span.children),
                ok=ok,
            )

        if isinstance(result, ServiceResult):
            meta = {**(result.meta or {}), "telemetry": span.to_dict()}
            return result.model_copy(update={"meta": meta})  # type: ignore[return-value]
        return result

    return wrapper
