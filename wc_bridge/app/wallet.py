from __future__ import annotations

import importlib
import inspect
from collections.abc import Callable
from typing import Any

from libs.common.errors import ConfigurationError
from libs.common.logging import get_logger
from wc_bridge.modules.bridge.contracts import WalletClientProtocol

logger = get_logger("wc_bridge.wallet")

_REQUIRED_METHODS = ("pair", "approve_session", "reject_session", "respond_session_request", "on")


def resolve_wallet_factory(path: str) -> Callable[..., Any]:
    """`package.module:callable` 형식의 경로에서 지갑 클라이언트 팩토리를 찾아요."""
    module_name, _, attribute = path.partition(":")
    if not module_name or not attribute:
        raise ConfigurationError(
            "WALLET_FACTORY는 `package.module:callable` 형식이어야 해요."
        )
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise ConfigurationError(f"지갑 팩토리 모듈을 불러오지 못했어요: {module_name}") from exc

    factory = getattr(module, attribute, None)
    if not callable(factory):
        raise ConfigurationError(f"지갑 팩토리를 찾을 수 없어요: {path}")
    return factory


async def create_wallet_client(
    factory_path: str,
    *,
    project_id: str,
    metadata: dict[str, Any],
) -> WalletClientProtocol:
    if not factory_path:
        raise ConfigurationError("WALLET_FACTORY가 설정되지 않았어요.")

    factory = resolve_wallet_factory(factory_path)
    client = factory(project_id=project_id, metadata=metadata)
    if inspect.isawaitable(client):
        client = await client

    missing = [name for name in _REQUIRED_METHODS if not callable(getattr(client, name, None))]
    if missing:
        raise ConfigurationError(f"지갑 클라이언트에 필요한 메서드가 없어요: {', '.join(missing)}")

    logger.info("wallet_client_ready", factory=factory_path, project_id=project_id)
    return client
