"""
Exception handlers that turn core errors into HTTP responses.

Every error body has the same shape and carries a correlation id that
is also written to the log, so support can match a user report to the
server-side entry without the response leaking internals.
"""

import logging
import uuid

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from authcore.core.exceptions import (
    AccountNotActiveError,
    AuthCoreError,
    StorageUnavailableError,
)

logger = logging.getLogger(__name__)


def _error_body(error_id: str, exc: AuthCoreError) -> dict:
    return {
        "error": {
            "id": error_id,
            "code": exc.error_code,
            "message": exc.detail,
            "status_code": exc.status_code,
        }
    }


async def auth_core_exception_handler(request: Request, exc: AuthCoreError) -> JSONResponse:
    error_id = str(uuid.uuid4())
    level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    logger.log(
        level,
        "[%s] %s on %s %s",
        error_id,
        exc.error_code,
        request.method,
        request.url.path,
    )

    content = _error_body(error_id, exc)
    if isinstance(exc, AccountNotActiveError):
        content["account_status"] = exc.account_status
        content["activation_required"] = True

    headers = {"X-Error-ID": error_id}
    if exc.status_code == 401:
        headers["WWW-Authenticate"] = "Bearer"
    if exc.retryable:
        headers["Retry-After"] = "1"
    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)


async def storage_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Driver errors that escaped a session scope are still retryable."""
    return await auth_core_exception_handler(request, StorageUnavailableError())


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AuthCoreError, auth_core_exception_handler)
    app.add_exception_handler(OperationalError, storage_exception_handler)
    app.add_exception_handler(PoolTimeoutError, storage_exception_handler)
