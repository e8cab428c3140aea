import logging
from decimal import Decimal

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

from app.cashdesk.core.error_catalog import AppError, ErrorCatalog, ErrorDefinition, CashSessionError
from app.cashdesk.core.logging import log_json
from app.cashdesk.core.metrics import metrics

logger = logging.getLogger("cashdesk.errors")

_HTTP_STATUS_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
}

_LOCK_TIMEOUT_MARKERS = (
    "lock timeout",
    "deadlock detected",
    "database is locked",
    "could not obtain lock",
)


def _is_lock_timeout(exc: Exception) -> bool:
    return isinstance(exc, OperationalError) and any(marker in str(exc).lower() for marker in _LOCK_TIMEOUT_MARKERS)


def _json_safe(value):
    if isinstance(value, Decimal):
        return format(value, "f")
    if isinstance(value, dict):
        return {key: _json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(item) for item in value]
    return value


def _validation_error_details(exc: RequestValidationError) -> dict:
    errors = []
    for error in exc.errors():
        loc = list(error.get("loc", []))
        field = ".".join(str(item) for item in loc if item not in {"body", "query", "path", "header"}) or None
        errors.append(
            {
                "field": field,
                "message": error.get("msg", "Invalid value"),
                "type": error.get("type", "validation_error"),
            }
        )
    fields = [item["field"] for item in errors if item["field"]]
    return {"fields": fields, "errors": errors}


def _trace_id(request: Request) -> str:
    return getattr(request.state, "trace_id", "")


def error_payload(request: Request, code: str, message: str, details: object) -> dict:
    return {
        "code": code,
        "message": message,
        "details": _json_safe(details),
        "trace_id": _trace_id(request),
    }


def error_response(code: str, message: str, details: object, trace_id: str, status_code: int) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"code": code, "message": message, "details": _json_safe(details), "trace_id": trace_id},
    )


def _respond(request: Request, exc: Exception, *, status_code: int, code: str, message: str, details) -> JSONResponse:
    request.state.error_code = code
    request.state.error_class = exc.__class__.__name__
    payload = error_payload(request, code, message, details)
    # a failed attempt is stored too, so a retried key replays the same error
    idempotency = getattr(request.state, "idempotency", None)
    if idempotency is not None:
        idempotency.record_failure(status_code=status_code, response_body=payload)
    return JSONResponse(status_code=status_code, content=payload)


def _respond_with(request: Request, exc: Exception, error: ErrorDefinition, details) -> JSONResponse:
    return _respond(
        request,
        exc,
        status_code=error.status_code,
        code=error.code,
        message=error.message,
        details=details,
    )


def setup_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if isinstance(exc, CashSessionError):
            log_json(
                logger,
                {
                    "event": "cash_session.rejected",
                    "code": exc.error.code,
                    "reason": exc.message,
                    "trace_id": _trace_id(request),
                },
            )
        return _respond_with(request, exc, exc.error, exc.details)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return _respond(
            request,
            exc,
            status_code=exc.status_code,
            code=_HTTP_STATUS_CODES.get(exc.status_code, "HTTP_ERROR"),
            message=str(exc.detail) if exc.detail is not None else "HTTP error",
            details=None,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return _respond_with(request, exc, ErrorCatalog.VALIDATION_ERROR, _validation_error_details(exc))

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        if _is_lock_timeout(exc):
            metrics.increment_lock_wait_timeout()
            return _respond_with(request, exc, ErrorCatalog.LOCK_TIMEOUT, {"type": exc.__class__.__name__})
        logger.exception("unhandled error trace_id=%s", _trace_id(request))
        return _respond_with(request, exc, ErrorCatalog.INTERNAL_ERROR, {"type": exc.__class__.__name__})
