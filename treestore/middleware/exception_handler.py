"""Exception handlers for structured error responses."""

import logging
from fastapi import Request
from fastapi.responses import JSONResponse
from ..exceptions import TreeStoreException, InternalError

logger = logging.getLogger(__name__)


async def treestore_exception_handler(request: Request, exc: TreeStoreException) -> JSONResponse:
    """
    Convert a TreeStoreException into its JSON error body and status code.

    Caller errors (4xx) are logged as [USER] at info level. Backend failures
    are logged as [INTERNAL] with the chained driver exception, which never
    reaches the response body.
    """
    extra = {
        "error_code": exc.error_code.value,
        "path": request.url.path,
        "method": request.method,
        "details": exc.details,
        "status_code": exc.status_code,
    }
    if exc.status_code >= 500:
        cause = exc.__cause__
        logger.error(
            f"[INTERNAL] {exc.error_code.value}: {exc.message}",
            extra=extra,
            exc_info=(type(cause), cause, cause.__traceback__) if cause else None,
        )
    else:
        logger.info(f"[USER] {exc.error_code.value}: {exc.message}", extra=extra)

    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict()
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last resort: anything not already translated becomes a generic 500."""
    logger.exception(
        "[INTERNAL] Unhandled exception",
        extra={"path": request.url.path, "method": request.method},
    )
    error = InternalError()
    return JSONResponse(status_code=error.status_code, content=error.to_dict())
