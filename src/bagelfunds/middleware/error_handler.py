"""Global exception handlers.

Auth gates abort with ``FlashRedirect``; everything else that escapes a
handler becomes a JSON error body.
"""

from contextlib import aclosing

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from bagelfunds.auth.dependencies import get_optional_user
from bagelfunds.config import get_settings
from bagelfunds.database import get_session
from bagelfunds.flash import FlashRedirect, flash_redirect

logger = structlog.get_logger()


async def _is_logged_in(request: Request) -> bool:
    if get_settings().session_cookie_name not in request.cookies:
        return False
    session_dependency = request.app.dependency_overrides.get(get_session, get_session)
    try:
        async with aclosing(session_dependency()) as sessions:
            async for db in sessions:
                return await get_optional_user(request, db) is not None
    except RuntimeError as e:
        logger.warning("not_found_session_check_skipped", error=str(e))
    return False


def setup_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers."""

    @app.exception_handler(FlashRedirect)
    async def flash_redirect_handler(_request: Request, exc: FlashRedirect) -> RedirectResponse:
        """Turn an aborted gate into a 303 with its status code."""
        response = flash_redirect(exc.location, error=exc.error, success=exc.success)
        if exc.clear_session:
            response.delete_cookie(get_settings().session_cookie_name)
        return response

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        """JSON errors. The not-found page also tells whether the visitor is signed in."""
        if exc.status_code == 404:
            return JSONResponse(
                status_code=404,
                content={"detail": "Not Found", "logged_in": await _is_logged_in(request)},
            )
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={"detail": "Validation error", "errors": jsonable_errors(exc)},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unhandled exceptions. The request's transaction is never committed."""
        logger.error(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=exc,
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    """Validation errors without the non-serializable ``ctx`` payloads."""
    return [{k: v for k, v in error.items() if k not in ("ctx", "url")} for error in exc.errors()]
