import logging
import time

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from pointsapi.config import settings

logger = logging.getLogger("pointsapi.http")


class LoggingMiddleware(BaseHTTPMiddleware):
    """요청/응답 한 줄 로그 (4xx는 WARNING, 5xx는 ERROR)"""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        start = time.perf_counter()
        user_id = request.headers.get(settings.INTERNAL_USER_HEADER, "-")
        target = f"{request.method} {request.url.path} (user {user_id})"

        logger.info(f"[Request] {target}")
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(f"[Unhandled Error] {target}")
            raise

        duration_ms = (time.perf_counter() - start) * 1000
        line = f"[Response] {target} -> {response.status_code} in {duration_ms:.1f}ms"
        if response.status_code >= 500:
            logger.error(line)
        elif response.status_code >= 400:
            logger.warning(line)
        else:
            logger.info(line)
        return response
