from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from libs.common.errors import DomainError, ErrorEnvelope, build_error_envelope
from libs.common.logging import get_logger


def _error_response(status_code: int, envelope: ErrorEnvelope) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error_code": envelope.error_code,
            "message": envelope.message,
            "trace_id": envelope.trace_id,
            "retryable": envelope.retryable,
        },
    )


def register_exception_handlers(app: FastAPI, logger_name: str) -> None:
    """도메인 오류는 400, 그 밖의 예외는 500 오류 봉투로 바꿔 응답해요."""
    logger = get_logger(logger_name)

    @app.exception_handler(DomainError)
    async def handle_domain_error(request: Request, exc: DomainError) -> JSONResponse:
        envelope = build_error_envelope(exc.error_code, exc.message, exc.retryable)
        logger.warning(
            "domain_error",
            path=request.url.path,
            trace_id=envelope.trace_id,
            error_code=exc.error_code,
            retryable=exc.retryable,
        )
        return _error_response(400, envelope)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        envelope = build_error_envelope("INTERNAL_ERROR", "브리지 내부 오류가 발생했어요.", True)
        logger.exception("unhandled_error", path=request.url.path, trace_id=envelope.trace_id, error=str(exc))
        return _error_response(500, envelope)
