"""
Admin authentication routes - email/password sign-in and session management.

Handles sign-in with CAPTCHA, sign-out and the current session lookup used
by the dashboard pages.
"""

from fastapi import APIRouter, Depends, Header, HTTPException, Request, Response, status
from structlog import get_logger

from app.api.dependencies import (
    get_admin_auth_service,
    get_captcha_verifier,
    get_current_admin,
    session_cookie,
)
from app.config import settings
from app.exceptions import AuthenticationError, CaptchaVerificationError
from app.models.api import (
    AdminUserResponse,
    ErrorResponse,
    SessionInfo,
    SessionResponse,
    SignInRequest,
)
from app.observability.metrics import metrics
from app.services.admin_auth import AdminAuthService, AuthenticatedAdmin
from app.services.captcha import CAPTCHA_HEADER, TurnstileVerifier

logger = get_logger(__name__)
router = APIRouter(prefix="/api/auth", tags=["auth"])


def _session_response(admin: AuthenticatedAdmin) -> SessionResponse:
    return SessionResponse(
        session=SessionInfo(id=admin.session.id, expires_at=admin.session.expires_at),
        user=AdminUserResponse(
            id=admin.user.id,
            email=admin.user.email,
            name=admin.user.name,
            role=admin.user.role,
        ),
    )


def _cookie_name() -> str:
    """Browsers only accept __Secure- cookies over HTTPS, so it is production-only."""
    if settings.is_production:
        return settings.secure_session_cookie_name
    return settings.session_cookie_name


@router.post(
    "/sign-in/email",
    response_model=SessionResponse,
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}},
)
async def sign_in_email(
    body: SignInRequest,
    request: Request,
    response: Response,
    captcha_response: str | None = Header(None, alias=CAPTCHA_HEADER),
    auth_service: AdminAuthService = Depends(get_admin_auth_service),
    captcha: TurnstileVerifier = Depends(get_captcha_verifier),
) -> SessionResponse:
    """
    Sign in with email and password.

    Verifies the CAPTCHA (when configured) before touching credentials,
    then sets the signed session cookie.
    """
    client_ip = request.client.host if request.client else None

    try:
        await captcha.verify(captcha_response, client_ip)
    except CaptchaVerificationError as e:
        metrics.record_sign_in("captcha_failed")
        logger.warning("sign_in_captcha_failed", client_ip=client_ip)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message) from e

    try:
        admin = await auth_service.sign_in(
            body.email,
            body.password,
            ip_address=client_ip,
            user_agent=request.headers.get("user-agent"),
        )
    except AuthenticationError as e:
        metrics.record_sign_in("rejected")
        logger.warning("sign_in_rejected", client_ip=client_ip)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=e.message) from e

    response.set_cookie(
        key=_cookie_name(),
        value=auth_service.cookie_value(admin.session),
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        max_age=settings.session_expires_seconds,
        path="/",
    )
    metrics.record_sign_in("success")

    return _session_response(admin)


@router.post("/sign-out")
async def sign_out(
    request: Request,
    response: Response,
    auth_service: AdminAuthService = Depends(get_admin_auth_service),
) -> dict[str, bool]:
    """Delete the current session and clear both cookie variants."""
    await auth_service.sign_out(session_cookie(request))

    response.delete_cookie(key=settings.session_cookie_name, path="/")
    response.delete_cookie(key=settings.secure_session_cookie_name, path="/", secure=True)

    return {"success": True}


@router.get(
    "/get-session",
    response_model=SessionResponse,
    responses={401: {"model": ErrorResponse}},
)
async def get_session(admin: AuthenticatedAdmin = Depends(get_current_admin)) -> SessionResponse:
    return _session_response(admin)
