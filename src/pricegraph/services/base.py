"""BaseService: shared foundation for all pricegraph services.

Every service wraps a :class:`Builder` (the revision owner) and the
resolved :class:`PricegraphConfig`. Reads go through the builder's
current revision; writes go through ``Builder.apply``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pricegraph.config.models import PricegraphConfig

if TYPE_CHECKING:
    from pricegraph.infrastructure.builder import Builder

logger = logging.getLogger(__name__)


class BaseService:
    """Base for all service-layer classes.

    Usage::

        class LintService(BaseService):
            def lint(self) -> ServiceResult:
                props = self._builder.get_props()
                ...
    """

    def __init__(self, builder: Builder, config: PricegraphConfig | None = None) -> None:
        self._builder = builder
        self._config = config or PricegraphConfig()

    @property
    def builder(self) -> Builder:
        return self._builder

    @property
    def config(self) -> PricegraphConfig:
        return self._config

    def _dispatch_event(self, hook_name: str, payload: dict[str, Any], warnings: list[str]) -> None:
        """Call a plugin hook with *payload*. No-op without a plugin manager.

        INVARIANT: Plugin failures are warnings, never errors.
        """
        plugins = self._builder.plugins
        if plugins is None:
            return
        try:
            getattr(plugins.hook, hook_name)(**payload)
        except Exception:
            logger.debug("Plugin hook %s failed", hook_name, exc_info=True)
            warnings.append(f"Plugin hook {hook_name} failed")
