"""Error Handlers — translate examops errors and request validation failures into JSON.

Invariants:
    - Every error body has the same envelope: {"error": {code, message, category, severity, ...}}
    - ExamOpsError keeps its own http_status; 4xx logs at warning, 5xx at error
    - Errors carrying retry_after_ms (backpressure, gateway rate limits) set Retry-After
    - A missing or blank X-Tenant-ID header is TENANT_REQUIRED, not a generic validation error
    - Unhandled exceptions answer 500 without any internal detail

Design Decisions:
    - Three layers registered separately: domain (ExamOpsError), validation (Pydantic),
      catch-all (Exception)
"""

import logging
import math

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from examops.api.dependencies import TENANT_HEADER
from examops.core.errors import ErrorSeverity, ExamOpsError

logger = logging.getLogger(__name__)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ExamOpsError, handle_examops_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_error)


async def handle_examops_error(request: Request, exc: ExamOpsError) -> JSONResponse:
    log = logger.warning if exc.http_status < 500 else logger.error
    log(
        f"{exc.code}: {exc.message}",
        extra={
            "error_code": exc.code,
            "path": request.url.path,
            "tenant_id": exc.context.tenant_id,
            "exam_id": exc.context.exam_id,
        },
    )
    return JSONResponse(
        status_code=exc.http_status,
        content=exc.to_response(),
        headers=_retry_after_header(exc.context.retry_after_ms),
    )


async def handle_validation_error(
    request: Request, exc: RequestValidationError,
) -> JSONResponse:
    details = [
        {
            "field": ".".join(str(part) for part in err["loc"]),
            "message": err["msg"],
            "type": err["type"],
        }
        for err in exc.errors()
    ]
    tenant_missing = any(
        tuple(str(p).lower() for p in err["loc"][:2]) == ("header", TENANT_HEADER)
        for err in exc.errors()
    )
    code = "TENANT_REQUIRED" if tenant_missing else "VALIDATION_ERROR"
    logger.warning(
        f"{code} on {request.url.path}: {len(details)} invalid field(s)",
        extra={"error_code": code, "path": request.url.path},
    )
    return _envelope(
        status.HTTP_400_BAD_REQUEST,
        code,
        "X-Tenant-ID header is required" if tenant_missing else "Invalid request data",
        "validation",
        ErrorSeverity.ERROR,
        details=details,
    )


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        f"Unhandled {type(exc).__name__} on {request.url.path}",
        extra={"error_code": "INTERNAL_ERROR", "path": request.url.path},
        exc_info=exc,
    )
    return _envelope(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "INTERNAL_ERROR",
        "An unexpected error occurred",
        "internal",
        ErrorSeverity.CRITICAL,
    )


def _envelope(
    status_code: int,
    code: str,
    message: str,
    category: str,
    severity: ErrorSeverity,
    **extra,
) -> JSONResponse:
    body = {
        "code": code,
        "message": message,
        "category": category,
        "severity": severity.value,
        **extra,
    }
    return JSONResponse(status_code=status_code, content={"error": body})


def _retry_after_header(retry_after_ms: int | None) -> dict[str, str] | None:
    if not retry_after_ms:
        return None
    # Retry-After is whole seconds; round up so clients never retry early
    return {"Retry-After": str(max(1, math.ceil(retry_after_ms / 1000)))}
