"""Domain-to-shim lookup, filled once at startup and read-only afterwards."""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Dict, FrozenSet, Mapping

from dsu.core.config import AppSettings
from dsu.core.errors import NotFoundError
from dsu.shims.base import Shim
from dsu.utils.http import ProviderHttpClient

logger = logging.getLogger(__name__)


class ShimRegistry:
    def __init__(self) -> None:
        self._shims: Dict[str, Shim] = {}
        self._frozen: Mapping[str, Shim] | None = None

    def register(self, shim: Shim) -> None:
        """Add a shim. Only valid before ``freeze``; not thread-safe."""
        if self._frozen is not None:
            raise RuntimeError("Shims cannot be registered after startup.")
        domain = shim.domain
        if not domain or not domain.strip():
            raise ValueError("A shim must declare a non-empty domain.")
        if domain in self._shims:
            raise ValueError(f"A shim is already registered for domain {domain!r}.")
        self._shims[domain] = shim
        logger.info("Registered shim for domain %s", domain)

    def freeze(self) -> "ShimRegistry":
        if self._frozen is None:
            self._frozen = MappingProxyType(dict(self._shims))
        return self

    @property
    def _view(self) -> Mapping[str, Shim]:
        return self._frozen if self._frozen is not None else self._shims

    def has(self, domain: str) -> bool:
        return domain in self._view

    def get(self, domain: str) -> Shim:
        try:
            return self._view[domain]
        except KeyError:
            raise NotFoundError(f"The domain is unknown: {domain}") from None

    def domains(self) -> FrozenSet[str]:
        return frozenset(self._view)


def build_shim_registry(
    settings: AppSettings, http: ProviderHttpClient
) -> ShimRegistry:
    """Register every shim whose credentials are configured, then freeze."""
    from dsu.shims.fitbit import FitbitShim
    from dsu.shims.twonet import TwoNetShim
    from dsu.shims.withings import WithingsShim

    registry = ShimRegistry()
    callback_url = str(settings.oauth.callback_url)

    if settings.fitbit.configured:
        registry.register(
            FitbitShim(
                consumer_key=settings.fitbit.client_id,
                consumer_secret=settings.fitbit.client_secret,
                callback_url=callback_url,
                http=http,
            )
        )
    else:
        logger.warning("Fitbit credentials not configured; shim disabled.")

    if settings.withings.configured:
        registry.register(
            WithingsShim(
                consumer_key=settings.withings.client_id,
                consumer_secret=settings.withings.client_secret,
                callback_url=callback_url,
                http=http,
            )
        )
    else:
        logger.warning("Withings credentials not configured; shim disabled.")

    if settings.twonet.configured:
        registry.register(
            TwoNetShim(
                key=settings.twonet.key,
                secret=settings.twonet.secret,
                callback_url=callback_url,
                http=http,
            )
        )
    else:
        logger.warning("2net credentials not configured; shim disabled.")

    return registry.freeze()


__all__ = ["ShimRegistry", "build_shim_registry"]
