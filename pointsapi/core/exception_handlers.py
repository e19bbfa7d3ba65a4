import logging
import traceback
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from pointsapi.config import settings

from .exceptions import BaseAPIException, InternalServerError

logger = logging.getLogger("pointsapi")


def _request_context(request: Request) -> str:
    client = request.client.host if request.client else "-"
    user_id = request.headers.get(settings.INTERNAL_USER_HEADER, "-")
    return f"{request.method} {request.url.path} from {client} (user {user_id})"


def _error_body(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {
        "success": False,
        "error": {"code": code, "message": message, "details": details or {}},
    }


async def handle_base_api_exception(request: Request, exc: BaseAPIException):
    line = f"[{exc.error_code}] {_request_context(request)} -> {exc.status_code}: {exc.message}"
    if exc.status_code >= 500:
        # 저장소 장애 등은 원인 예외까지 함께 기록
        cause = exc.__cause__
        if cause is not None:
            tb_str = "".join(traceback.format_exception(type(cause), cause, cause.__traceback__))
            logger.error(f"{line}\nCaused by:\n{tb_str}")
        else:
            logger.error(line)
    else:
        logger.warning(line)
    return JSONResponse(status_code=exc.status_code, content=exc.detail)  # type: ignore[arg-type]


async def handle_http_exception(request: Request, exc: StarletteHTTPException):
    line = f"[HTTPException] {_request_context(request)} -> {exc.status_code}: {exc.detail}"
    if exc.status_code >= 500:
        tb_str = "".join(traceback.format_tb(exc.__traceback__))
        logger.error(f"{line}\n\nStack Trace:\n{tb_str}")
    else:
        logger.warning(line)

    if isinstance(exc.detail, dict) and "error" in exc.detail:
        content = exc.detail
    else:
        content = _error_body("HTTP_ERROR", str(exc.detail))
    return JSONResponse(status_code=exc.status_code, content=content)


async def handle_validation_error(request: Request, exc: RequestValidationError):
    logger.warning(f"[ValidationError] {_request_context(request)} -> 422: {exc.errors()}")
    content = _error_body(
        "VALIDATION_001", "Validation failed", {"errors": exc.errors()}
    )
    return JSONResponse(status_code=422, content=jsonable_encoder(content))


async def handle_unexpected_error(request: Request, exc: Exception):
    tb_str = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    logger.error(
        f"\n{'=' * 80}\n"
        f"[Unhandled Error] {_request_context(request)}\n"
        f"Exception Type: {type(exc).__name__}\n"
        f"Exception Message: {str(exc)}\n\n"
        f"Full Stack Trace:\n{tb_str}"
        f"{'=' * 80}"
    )

    internal = InternalServerError()
    return JSONResponse(status_code=internal.status_code, content=internal.detail)  # type: ignore[arg-type]


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BaseAPIException, handle_base_api_exception)
    app.add_exception_handler(StarletteHTTPException, handle_http_exception)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_error)
