"""
HTTP middleware - reverse proxy headers and the dashboard session gate.
"""

from collections.abc import Awaitable, Callable, Iterable

from fastapi import Request, Response
from fastapi.responses import RedirectResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp
from structlog import get_logger

from app.observability.metrics import metrics

logger = get_logger(__name__)

DASHBOARD_PREFIX = "/billing"
LOGIN_PATH = "/billing/login"
PUBLIC_PATHS = frozenset({LOGIN_PATH})


class ProxyHeadersMiddleware(BaseHTTPMiddleware):
    """Middleware to handle X-Forwarded-* headers from reverse proxy."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        # Fix scheme based on X-Forwarded-Proto header
        forwarded_proto = request.headers.get("X-Forwarded-Proto")
        if forwarded_proto:
            request.scope["scheme"] = forwarded_proto.split(",")[0].strip()

        return await call_next(request)


def is_dashboard_path(path: str) -> bool:
    return path == DASHBOARD_PREFIX or path.startswith(DASHBOARD_PREFIX + "/")


class SessionGateMiddleware(BaseHTTPMiddleware):
    """
    Redirect-only gate in front of the dashboard pages.

    Only checks that a session cookie is present; the cookie is validated
    by the API routes the pages call. Non-dashboard paths pass untouched.
    """

    def __init__(
        self,
        app: ASGIApp,
        cookie_names: Iterable[str],
        enforce_https: bool = False,
    ) -> None:
        super().__init__(app)
        self.cookie_names = tuple(cookie_names)
        self.enforce_https = enforce_https

    def _redirect(self, request: Request, location: str, reason: str) -> RedirectResponse:
        metrics.record_gate_redirect(reason)
        logger.info(
            "session_gate_redirect", path=request.url.path, location=location, reason=reason
        )
        return RedirectResponse(location, status_code=302)

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        path = request.url.path
        if not is_dashboard_path(path):
            return await call_next(request)

        forwarded_proto = request.headers.get("X-Forwarded-Proto", request.url.scheme)
        if self.enforce_https and forwarded_proto.split(",")[0].strip() != "https":
            return self._redirect(request, str(request.url.replace(scheme="https")), "https")

        has_session = any(name in request.cookies for name in self.cookie_names)

        if path in PUBLIC_PATHS:
            if has_session and path == LOGIN_PATH:
                return self._redirect(request, DASHBOARD_PREFIX, "already_signed_in")
            return await call_next(request)

        if not has_session:
            return self._redirect(request, LOGIN_PATH, "no_session")

        return await call_next(request)
