from __future__ import annotations

from fastapi import FastAPI

from libs.common.http_handlers import register_exception_handlers
from libs.common.logging import configure_logging
from wc_bridge.app.settings import settings
from wc_bridge.bootstrap import create_lifespan
from wc_bridge.modules import build_api_router

configure_logging(settings.log_level)

app = FastAPI(title=settings.service_name, lifespan=create_lifespan(settings))
app.include_router(build_api_router())
register_exception_handlers(app, "wc_bridge.errors")
