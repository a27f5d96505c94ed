"""Maps domain exceptions onto HTTP responses.

| Exception             | Status |
|-----------------------|--------|
| ObjectNotFoundError   | 404    |
| ValidationError       | 400    |
| OrderAccessDenied     | 403    |
| VersionConflict       | 409    |
| ExpectedVersionError  | 409    |
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from protean.exceptions import ExpectedVersionError, ObjectNotFoundError, ValidationError
from protean.integrations.fastapi import register_exception_handlers

from sales.exceptions import OrderAccessDenied, VersionConflict


def _detail(exc):
    """``messages`` where the exception carries them, else its payload or text."""
    messages = getattr(exc, "messages", None)
    if messages is not None:
        return messages
    if exc.args and isinstance(exc.args[0], dict):
        return exc.args[0]
    return str(exc)


def _error_response(status_code: int, error: str, exc) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, "detail": _detail(exc)})


async def _not_found(request: Request, exc: ObjectNotFoundError) -> JSONResponse:  # noqa: ARG001
    return _error_response(404, "not_found", exc)


async def _bad_request(request: Request, exc: ValidationError) -> JSONResponse:  # noqa: ARG001
    return _error_response(400, "bad_request", exc)


async def _forbidden(request: Request, exc: OrderAccessDenied) -> JSONResponse:  # noqa: ARG001
    return _error_response(403, "forbidden", exc)


async def _conflict(request: Request, exc: VersionConflict) -> JSONResponse:  # noqa: ARG001
    return JSONResponse(
        status_code=409,
        content={"error": "conflict", "detail": exc.messages, "current_version": exc.actual_version},
    )


async def _store_conflict(request: Request, exc: ExpectedVersionError) -> JSONResponse:  # noqa: ARG001
    # Another writer committed first; the caller must re-read the order
    return JSONResponse(
        status_code=409,
        content={"error": "conflict", "detail": {"version": [str(exc)]}, "current_version": None},
    )


def register_sales_exception_handlers(app: FastAPI) -> None:
    """Protean's defaults first, then the sales-specific mapping on top."""
    register_exception_handlers(app)
    app.add_exception_handler(ObjectNotFoundError, _not_found)
    app.add_exception_handler(ValidationError, _bad_request)
    app.add_exception_handler(OrderAccessDenied, _forbidden)
    app.add_exception_handler(VersionConflict, _conflict)
    app.add_exception_handler(ExpectedVersionError, _store_conflict)
