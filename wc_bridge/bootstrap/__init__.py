from __future__ import annotations

from wc_bridge.bootstrap.container import RuntimeComponents, build_runtime_components
from wc_bridge.bootstrap.lifespan import create_lifespan

__all__ = [
    "RuntimeComponents",
    "build_runtime_components",
    "create_lifespan",
]
