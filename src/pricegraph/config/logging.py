"""One stderr log stream for pricegraph, via structlog.

Domain and infrastructure modules log through ``logging.getLogger(__name__)``;
services and telemetry use structlog loggers. Both are rendered by the same
handler, as console lines by default or JSON lines with ``--log-json``.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import structlog

HANDLER_NAME = "pricegraph-stderr"


def _shared_chain() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def configure_logging(*, verbose: bool = False, log_json: bool = False) -> None:
    """Install the pricegraph handler on the root logger.

    Calling again replaces the handler installed by an earlier call. Other
    root handlers are left alone.

    Args:
        verbose: Emit DEBUG records from ``pricegraph.*``. Otherwise WARNING+.
        log_json: Use the JSON renderer instead of the console renderer.
    """
    chain = _shared_chain()
    structlog.configure(
        processors=[*chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer()
        if log_json
        else structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
    )
    handler = logging.StreamHandler(sys.stderr)
    handler.set_name(HANDLER_NAME)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=chain,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    for old in [h for h in root.handlers if h.get_name() == HANDLER_NAME]:
        root.removeHandler(old)
    root.addHandler(handler)
    root.setLevel(logging.WARNING)
    logging.getLogger("pricegraph").setLevel(logging.DEBUG if verbose else logging.WARNING)


def bind_document(path: Path | str) -> None:
    """Tag every later log line of this context with the document being read."""
    structlog.contextvars.bind_contextvars(document=str(path))
