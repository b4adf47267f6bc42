"""Exception handlers mapping domain failures to HTTP responses.

Every error body has the InformativeResponse shape: {"code": ..., "message": ...}.
"""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from cat_engine.api.schemas import InformativeResponse
from cat_engine.errors import CatError
from cat_engine.observability import get_logger

logger = get_logger(__name__)


def _informative(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=InformativeResponse(code=status_code, message=message).model_dump(),
    )


async def _cat_error_handler(request: Request, exc: CatError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.warning("Request failed", path=request.url.path, status_code=exc.status_code, error=exc.message)
    else:
        logger.info("Request rejected", path=request.url.path, status_code=exc.status_code, error=exc.message)
    return _informative(exc.status_code, exc.message)


async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        messages.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return _informative(400, "; ".join(messages) or "Invalid request.")


async def _unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error", path=request.url.path, error_type=type(exc).__name__)
    return _informative(500, "An unexpected error occurred.")


def register_exception_handlers(app: FastAPI) -> None:
    """Install the handlers on `app`."""
    app.add_exception_handler(CatError, _cat_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _request_validation_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _unhandled_exception_handler)
