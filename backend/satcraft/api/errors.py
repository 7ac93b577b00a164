import logging

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from satcraft.core.errors import ErrorKind, SatcraftError

logger = logging.getLogger("satcraft.api")

_STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.QUOTA: 503,
    ErrorKind.RATE_LIMIT: 429,
    ErrorKind.INVALID_REQUEST: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.FORBIDDEN: 403,
}

_HINTS: dict[ErrorKind, str] = {
    ErrorKind.QUOTA: "The AI provider's quota is exhausted. Check the plan and billing details, then try again.",
    ErrorKind.RATE_LIMIT: "Too many requests to the AI provider. Please wait a moment and retry.",
    ErrorKind.VALIDATION_EXHAUSTED: "No question passed validation. Try again or adjust the topic.",
}


def http_status_for(kind: ErrorKind) -> int:
    return _STATUS_BY_KIND.get(kind, 500)


def error_body(exc: SatcraftError) -> dict:
    body = exc.to_dict()
    hint = _HINTS.get(exc.kind)
    if hint:
        body["hint"] = hint
    return body


async def satcraft_error_handler(request: Request, exc: SatcraftError) -> JSONResponse:
    status = http_status_for(exc.kind)
    if status >= 500:
        logger.error("[api] %s %s failed: %s (%s)", request.method, request.url.path, exc.message, exc.kind.value)
    else:
        logger.info("[api] %s %s -> %d %s", request.method, request.url.path, status, exc.kind.value)
    return JSONResponse(status_code=status, content=error_body(exc))


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request", "kind": ErrorKind.INVALID_REQUEST.value, "details": details},
    )
