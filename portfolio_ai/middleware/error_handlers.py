"""
Request-level middleware: exception mapping, request logging and timing.
"""
import time
import traceback
import uuid
from datetime import datetime, timezone
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.middleware.base import BaseHTTPMiddleware

from portfolio_ai.utils.exceptions import PortfolioAIBaseException, map_to_http_exception
from portfolio_ai.utils.logging_config import get_logger

logger = get_logger(__name__)


def error_response(request_id: str, status_code: int, detail: Any) -> JSONResponse:
    if isinstance(detail, str):
        detail = {"message": detail}
    elif not isinstance(detail, dict):
        detail = {"message": str(detail)}

    body = {
        "success": False,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "request_id": request_id,
        "status_code": status_code,
        **detail,
    }
    return JSONResponse(status_code=status_code, content=body, headers={"X-Request-ID": request_id})


class ExceptionHandlerMiddleware(BaseHTTPMiddleware):
    """Turns engine exceptions into structured JSON errors; never leaks internals."""

    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id

        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            return response

        except PortfolioAIBaseException as exc:
            logger.error(
                f"{exc.__class__.__name__} in {request.method} {request.url.path}: {exc.message}",
                extra={"request_id": request_id, "error_code": exc.error_code, "details": exc.details},
            )
            http_exc = map_to_http_exception(exc)
            return error_response(request_id, http_exc.status_code, http_exc.detail)

        except ValidationError as exc:
            logger.error(f"Data validation error in {request.method} {request.url.path}: {exc}")
            return error_response(request_id, 400, {
                "error": "Data validation failed",
                "message": "Invalid data format or values",
                "validation_errors": exc.errors(),
            })

        except Exception as exc:
            logger.error(
                f"Unhandled exception in {request.method} {request.url.path}: {exc}",
                extra={"request_id": request_id, "traceback": traceback.format_exc()},
                exc_info=True,
            )
            return error_response(request_id, 500, {
                "error": "Internal server error",
                "message": "An unexpected error occurred. Please try again later.",
            })


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """One log line per request with status and duration; health probes stay quiet."""

    QUIET_PATHS = {"/health", "/healthz", "/ping"}

    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        request_id = getattr(request.state, "request_id", None)
        response = await call_next(request)
        elapsed = time.perf_counter() - start

        log = logger.debug if request.url.path in self.QUIET_PATHS else logger.info
        log(
            f"{request.method} {request.url.path} - {response.status_code} in {elapsed:.3f}s",
            extra={"request_id": request_id, "processing_time": elapsed},
        )
        return response


class PerformanceMiddleware(BaseHTTPMiddleware):
    """Flags slow requests and exposes the processing time as a header."""

    def __init__(self, app, slow_request_threshold: float = 2.0):
        super().__init__(app)
        self.slow_request_threshold = slow_request_threshold

    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - start

        if elapsed > self.slow_request_threshold:
            logger.warning(f"Slow request: {request.method} {request.url.path} took {elapsed:.3f}s")
        response.headers["X-Processing-Time"] = f"{elapsed:.3f}"
        return response
