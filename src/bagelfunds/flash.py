"""Redirect-based status signalling for the page workflows.

Pages report outcomes by redirecting with a short code in the query string:
``?e=<code>`` for a rejection, ``?s=<code>`` for a success. Services raise
``RuleViolation`` for business-rule rejections; auth gates raise
``FlashRedirect`` because a dependency cannot return a response itself.
"""

from __future__ import annotations

from urllib.parse import urlencode

from fastapi.responses import RedirectResponse


class RuleViolation(ValueError):
    """A business rule rejected the request. ``code`` goes into ``?e=``."""

    def __init__(self, code: str, message: str | None = None) -> None:
        super().__init__(message or code)
        self.code = code


class FlashRedirect(Exception):  # noqa: N818
    """Abort the request and redirect, optionally dropping the session cookie."""

    def __init__(
        self,
        location: str,
        *,
        error: str | None = None,
        success: str | None = None,
        clear_session: bool = False,
    ) -> None:
        super().__init__(error or success or location)
        self.location = location
        self.error = error
        self.success = success
        self.clear_session = clear_session


def flash_url(location: str, *, error: str | None = None, success: str | None = None) -> str:
    """Append the ``e``/``s`` status codes to a path."""
    params = {}
    if error:
        params["e"] = error
    if success:
        params["s"] = success
    if not params:
        return location
    return f"{location}?{urlencode(params)}"


def flash_redirect(location: str, *, error: str | None = None, success: str | None = None) -> RedirectResponse:
    """303 redirect carrying a status code, so browsers follow with GET."""
    return RedirectResponse(flash_url(location, error=error, success=success), status_code=303)
