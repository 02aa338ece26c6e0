"""핸들러 경계를 모두 빠져나온 예외를 로그로 남기고 프로세스는 계속 살려 둬요."""

from __future__ import annotations

import asyncio
import sys
from types import TracebackType
from typing import Any

from libs.common.logging import get_logger

logger = get_logger("wc_bridge.process")


def _log_loop_exception(loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
    exc = context.get("exception")
    logger.error(
        "unhandled_loop_exception",
        message=context.get("message"),
        error=str(exc) if exc is not None else None,
        exc_info=exc,
    )


def _log_uncaught_exception(
    exc_type: type[BaseException],
    exc: BaseException,
    traceback: TracebackType | None,
) -> None:
    if issubclass(exc_type, KeyboardInterrupt):
        sys.__excepthook__(exc_type, exc, traceback)
        return
    logger.error("uncaught_exception", error=str(exc), exc_info=(exc_type, exc, traceback))


def install_safety_nets(loop: asyncio.AbstractEventLoop | None = None) -> None:
    target_loop = loop or asyncio.get_running_loop()
    target_loop.set_exception_handler(_log_loop_exception)
    sys.excepthook = _log_uncaught_exception
