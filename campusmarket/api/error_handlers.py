"""Maps the domain error taxonomy onto HTTP responses.

InvalidStateError always carries the resource's current status so clients can
refresh instead of showing an opaque failure.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from campusmarket.core.errors import InvalidStateError, MarketError, StorageError

log = logging.getLogger(__name__)


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(MarketError)
    async def market_error_handler(request: Request, exc: MarketError):
        if isinstance(exc, StorageError):
            log.error("%s %s: %s", request.method, request.url.path, exc.message)
        elif isinstance(exc, InvalidStateError):
            log.info("%s %s: stale state (%s)", request.method, request.url.path, exc.current_status)
        else:
            log.warning("%s %s: %s (%s)", request.method, request.url.path, exc.code, exc.message)
        return JSONResponse(status_code=exc.http_status, content=exc.to_response())

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        log.error("unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": {"code": "internal_error", "message": "An unexpected error occurred"}},
        )
