"""
Homie-Do - HTTP Middleware
Request ids, timing and request logging.
"""

import time
from typing import Callable, Set

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from logging_config import generate_request_id, get_logger, set_request_id, set_user_id

logger = get_logger(__name__)

SKIP_LOGGING_PATHS: Set[str] = {"/", "/health", "/favicon.ico", "/docs", "/redoc", "/openapi.json"}


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Tags every request with an ``X-Request-ID`` and logs method, path,
    status and duration. Bodies are never logged since they carry
    passwords and reset tokens.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or generate_request_id()
        set_request_id(request_id)
        path = request.url.path
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
            duration_ms = (time.perf_counter() - start_time) * 1000
            response.headers["X-Request-ID"] = request_id

            if path not in SKIP_LOGGING_PATHS:
                status_code = response.status_code
                if status_code >= 500:
                    log = logger.error
                elif status_code >= 400:
                    log = logger.warning
                else:
                    log = logger.info
                log(
                    f"{request.method} {path} - {status_code} ({duration_ms:.2f}ms)",
                    extra={"http_method": request.method, "http_path": path,
                           "http_status": status_code, "duration_ms": duration_ms},
                )
            return response
        except Exception as exc:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.error(
                f"{request.method} {path} - {type(exc).__name__} ({duration_ms:.2f}ms)",
                exc_info=True,
            )
            raise
        finally:
            set_request_id("")
            set_user_id("")
