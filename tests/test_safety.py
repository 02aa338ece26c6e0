from __future__ import annotations

import asyncio
import sys

import pytest

from wc_bridge.bootstrap.safety import install_safety_nets


def test_safety_nets_log_instead_of_raising(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(sys, "excepthook", sys.excepthook)
    loop = asyncio.new_event_loop()
    try:
        install_safety_nets(loop)

        handler = loop.get_exception_handler()
        assert handler is not None
        handler(loop, {"message": "Task exception was never retrieved", "exception": RuntimeError("late")})

        error = ValueError("escaped")
        sys.excepthook(ValueError, error, None)
    finally:
        loop.close()

    assert sys.excepthook is not sys.__excepthook__
