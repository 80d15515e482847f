"""Request correlation middleware and JSON exception handlers."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from time import perf_counter
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from fastapi import status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError, ResponseValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from reviewflow.core.config import settings
from reviewflow.core.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from fastapi import FastAPI
    from starlette.requests import Request
    from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-Id"
HEALTH_PATHS = frozenset({"/health", "/healthz", "/readyz"})

logger = get_logger(__name__)


def _get_request_id(request: Request) -> str | None:
    request_id = getattr(request.state, "request_id", None)
    if isinstance(request_id, str) and request_id:
        return request_id
    return None


def _json_safe(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).decode("utf-8", errors="replace")
    if isinstance(value, Mapping):
        return {str(key): _json_safe(item) for key, item in value.items()}
    if isinstance(value, Sequence) and not isinstance(value, str):
        return [_json_safe(item) for item in value]
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


def _error_payload(*, detail: object, request_id: str | None) -> dict[str, object]:
    payload: dict[str, object] = {"detail": detail}
    if request_id is not None:
        payload["request_id"] = request_id
    return payload


def _json_response(request: Request, *, status_code: int, detail: object) -> JSONResponse:
    request_id = _get_request_id(request)
    response = JSONResponse(
        status_code=status_code,
        content=_error_payload(detail=detail, request_id=request_id),
    )
    if request_id is not None:
        response.headers[REQUEST_ID_HEADER] = request_id
    return response


async def _request_validation_exception_handler(request: Request, exc: Exception) -> Response:
    if not isinstance(exc, RequestValidationError):
        msg = f"Expected RequestValidationError, got {type(exc).__name__}"
        raise TypeError(msg)
    return _json_response(
        request,
        status_code=422,
        detail=jsonable_encoder(_json_safe(exc.errors())),
    )


async def _response_validation_exception_handler(request: Request, exc: Exception) -> Response:
    if not isinstance(exc, ResponseValidationError):
        msg = f"Expected ResponseValidationError, got {type(exc).__name__}"
        raise TypeError(msg)
    logger.error(
        "http.response.validation_failed",
        extra={"path": request.url.path, "request_id": _get_request_id(request)},
    )
    return _json_response(
        request,
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Internal Server Error",
    )


async def _http_exception_exception_handler(request: Request, exc: Exception) -> Response:
    if not isinstance(exc, StarletteHTTPException):
        msg = f"Expected StarletteHTTPException, got {type(exc).__name__}"
        raise TypeError(msg)
    response = _json_response(request, status_code=exc.status_code, detail=exc.detail)
    if exc.headers:
        response.headers.update(exc.headers)
    return response


async def _unhandled_exception_handler(request: Request, exc: Exception) -> Response:
    logger.error(
        "http.request.unhandled_exception",
        exc_info=exc,
        extra={"path": request.url.path, "request_id": _get_request_id(request)},
    )
    return _json_response(
        request,
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Internal Server Error",
    )


async def _request_context_middleware(
    request: Request,
    call_next: Callable[[Request], Awaitable[Response]],
) -> Response:
    incoming = (request.headers.get(REQUEST_ID_HEADER) or "").strip()
    request_id = incoming or uuid4().hex
    request.state.request_id = request_id

    started = perf_counter()
    response = await call_next(request)
    elapsed_ms = (perf_counter() - started) * 1000
    response.headers[REQUEST_ID_HEADER] = request_id

    path = request.url.path
    if path in HEALTH_PATHS and not settings.request_log_include_health:
        return response
    extra = {
        "method": request.method,
        "path": path,
        "status_code": response.status_code,
        "duration_ms": round(elapsed_ms, 2),
        "request_id": request_id,
    }
    if settings.request_log_slow_ms and elapsed_ms >= settings.request_log_slow_ms:
        logger.warning(
            "http.request.slow",
            extra={**extra, "slow_threshold_ms": settings.request_log_slow_ms},
        )
    else:
        logger.info("http.request.completed", extra=extra)
    return response


def install_error_handling(app: FastAPI) -> None:
    """Attach request-id middleware and JSON error handlers to an app."""
    app.middleware("http")(_request_context_middleware)
    app.add_exception_handler(RequestValidationError, _request_validation_exception_handler)
    app.add_exception_handler(ResponseValidationError, _response_validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, _http_exception_exception_handler)
    app.add_exception_handler(Exception, _unhandled_exception_handler)
