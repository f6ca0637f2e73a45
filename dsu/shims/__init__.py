"""Provider integrations and the registry that looks them up by domain."""

from .base import AuthorizationEngine, Shim
from .registry import ShimRegistry, build_shim_registry

__all__ = ["AuthorizationEngine", "Shim", "ShimRegistry", "build_shim_registry"]
