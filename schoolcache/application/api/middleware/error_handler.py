"""
Error Handling Middleware
=========================

Last line of defense for exceptions no route or exception handler dealt
with. The cache itself never raises into a route (it fails open), so
anything reaching this middleware is a bug in a route or its dependencies.

The JSON 500 carries the request's thread id (body and X-Thread-ID header)
so a support ticket can be matched to the logged traceback. The traceback
itself is only echoed to the client when ``include_traceback`` is set
(development).
"""

import traceback
from collections.abc import Callable

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from schoolcache.core.config.constants import HEADER_THREAD_ID
from schoolcache.core.logging.logger import get_logger, get_thread_id

logger = get_logger(__name__)


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Turn unhandled exceptions into a correlated JSON 500."""

    def __init__(self, app, include_traceback: bool = False):
        super().__init__(app)
        self.include_traceback = include_traceback

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except Exception as e:
            thread_id = get_thread_id() or request.headers.get(HEADER_THREAD_ID)

            logger.error(
                "Unhandled exception",
                method=request.method,
                path=request.url.path,
                error_type=type(e).__name__,
                error=str(e),
                exc_info=True,
            )

            body = {
                "error": "internal_server_error",
                "message": "An unexpected error occurred while processing your request",
                "error_type": type(e).__name__,
                "thread_id": thread_id,
            }
            if self.include_traceback:
                body["detail"] = str(e)
                body["traceback"] = traceback.format_exc()

            headers = {HEADER_THREAD_ID: thread_id} if thread_id else None
            return JSONResponse(status_code=500, content=body, headers=headers)
