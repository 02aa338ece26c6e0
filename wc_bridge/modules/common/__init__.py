from __future__ import annotations

from wc_bridge.modules.common.deps import (
    get_binding_store,
    get_consumer,
    get_session_store,
)

__all__ = [
    "get_binding_store",
    "get_consumer",
    "get_session_store",
]
