"""
API Error Handling

Maps domain exceptions to HTTP responses. Unexpected errors are logged
server side and answered without internals.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import structlog

from northwind.errors import NorthwindError

logger = structlog.get_logger(__name__)


async def northwind_error_handler(request: Request, exc: NorthwindError) -> JSONResponse:
    logger.warning(
        "Request rejected",
        path=request.url.path,
        error=exc.message,
        error_type=type(exc).__name__,
        status_code=exc.status_code,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": type(exc).__name__},
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Unhandled error",
        path=request.url.path,
        error=str(exc),
        error_type=type(exc).__name__,
        exc_info=exc,
    )
    payload = {"detail": "Internal Server Error"}
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        payload["request_id"] = request_id
    return JSONResponse(status_code=500, content=payload)


def register_exception_handlers(app: FastAPI) -> None:
    """Install the handlers on an application."""
    app.add_exception_handler(NorthwindError, northwind_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
