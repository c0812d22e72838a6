"""
API v1 auth routes.

Registration by emailed code, login, token refresh, logout and the
current-user endpoint. The refresh token travels in an httpOnly cookie;
the access token is returned in the body. Code issuance, registration
completion and login are rate limited per client address.
"""

from fastapi import APIRouter, Depends, Request, Response

from src.api.dependencies import get_auth_service, get_settings_dep, require_user
from src.api.models import (
    AccessTokenData,
    AuthData,
    CompleteRegistrationRequest,
    CountsOut,
    CurrentUserOut,
    Envelope,
    ErrorResponse,
    InitiateRegistrationData,
    InitiateRegistrationRequest,
    LoginRequest,
    MessageData,
    RefreshTokenRequest,
    UserOut,
)
from src.api.rate_limiting import auth_limit, limiter, otp_limit
from src.config.settings import Settings
from src.domain.auth import AuthService
from src.domain.exceptions import ValidationError
from src.domain.models import AuthenticatedUser, AuthResult

router = APIRouter(prefix="/auth", tags=["auth"])


def _set_refresh_cookie(response: Response, token: str, settings: Settings) -> None:
    response.set_cookie(
        key=settings.refresh_cookie_name,
        value=token,
        max_age=settings.refresh_token_ttl_days * 24 * 60 * 60,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="strict",
    )


def _clear_refresh_cookie(response: Response, settings: Settings) -> None:
    response.delete_cookie(
        key=settings.refresh_cookie_name,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="strict",
    )


def _auth_envelope(result: AuthResult, response: Response, settings: Settings) -> Envelope[AuthData]:
    _set_refresh_cookie(response, result.refresh_token, settings)
    return Envelope(data=AuthData(user=UserOut.from_identity(result.user), access_token=result.access_token))


def _presented_refresh_token(request: Request, body: RefreshTokenRequest | None, settings: Settings) -> str | None:
    """Cookie first, then the request body."""
    token = request.cookies.get(settings.refresh_cookie_name)
    if token:
        return token
    if body is not None and body.refresh_token:
        return body.refresh_token
    return None


@router.post(
    "/register/initiate",
    response_model=Envelope[InitiateRegistrationData],
    responses={
        400: {"model": ErrorResponse, "description": "Invalid or disallowed email"},
        409: {"model": ErrorResponse, "description": "Email already registered"},
        429: {"model": ErrorResponse, "description": "Too many codes requested"},
    },
    summary="Start registration",
    description="Send a 6-digit verification code to the given email address.",
)
@limiter.limit(otp_limit)
def initiate_registration(
    request: Request,
    request_data: InitiateRegistrationRequest,
    service: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings_dep),
) -> Envelope[InitiateRegistrationData]:
    email = service.initiate(request_data.email)
    return Envelope(
        data=InitiateRegistrationData(
            message="Verification code sent to your email",
            email=email,
            expires_in_minutes=settings.otp_ttl_minutes,
        )
    )


@router.post(
    "/register/complete",
    response_model=Envelope[AuthData],
    responses={
        400: {"model": ErrorResponse, "description": "Invalid input or invalid/expired code"},
        409: {"model": ErrorResponse, "description": "Email or username already taken"},
        429: {"model": ErrorResponse, "description": "Too many attempts"},
    },
    summary="Complete registration",
    description="Verify the emailed code and create the account in one step.",
)
@limiter.limit(auth_limit)
def complete_registration(
    request: Request,
    request_data: CompleteRegistrationRequest,
    response: Response,
    service: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings_dep),
) -> Envelope[AuthData]:
    result = service.complete(
        email=request_data.email,
        code=request_data.otp,
        password=request_data.password,
        full_name=request_data.full_name,
        username=request_data.username,
        branch=request_data.branch,
        year=request_data.year,
    )
    return _auth_envelope(result, response, settings)


@router.post(
    "/login",
    response_model=Envelope[AuthData],
    responses={
        401: {"model": ErrorResponse, "description": "Invalid credentials"},
        429: {"model": ErrorResponse, "description": "Too many attempts"},
    },
    summary="Log in with email and password",
)
@limiter.limit(auth_limit)
def login(
    request: Request,
    request_data: LoginRequest,
    response: Response,
    service: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings_dep),
) -> Envelope[AuthData]:
    result = service.login(request_data.email, request_data.password)
    return _auth_envelope(result, response, settings)


@router.post(
    "/refresh",
    response_model=Envelope[AccessTokenData],
    responses={
        400: {"model": ErrorResponse, "description": "No refresh token presented"},
        401: {"model": ErrorResponse, "description": "Invalid refresh token"},
    },
    summary="Rotate the refresh token",
    description="Exchange the refresh token (cookie, or body fallback) for a new pair. "
    "The presented token stops working.",
)
def refresh(
    request: Request,
    response: Response,
    request_data: RefreshTokenRequest | None = None,
    service: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings_dep),
) -> Envelope[AccessTokenData]:
    token = _presented_refresh_token(request, request_data, settings)
    if token is None:
        raise ValidationError("refresh token is required")

    pair = service.refresh(token)
    _set_refresh_cookie(response, pair.refresh_token, settings)
    return Envelope(data=AccessTokenData(access_token=pair.access_token))


@router.post(
    "/logout",
    response_model=Envelope[MessageData],
    summary="Log out",
    description="Revoke the refresh token if one is presented and clear the cookie.",
)
def logout(
    request: Request,
    response: Response,
    request_data: RefreshTokenRequest | None = None,
    service: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings_dep),
) -> Envelope[MessageData]:
    token = _presented_refresh_token(request, request_data, settings)
    if token is not None:
        service.logout(token)
    _clear_refresh_cookie(response, settings)
    return Envelope(data=MessageData(message="Logged out successfully"))


@router.get(
    "/me",
    response_model=Envelope[CurrentUserOut],
    responses={401: {"model": ErrorResponse, "description": "Not authenticated"}},
    summary="Current user",
)
def me(
    user: AuthenticatedUser = Depends(require_user),
    service: AuthService = Depends(get_auth_service),
) -> Envelope[CurrentUserOut]:
    identity, stats = service.get_current_user(user.id)
    return Envelope(
        data=CurrentUserOut(
            **UserOut.from_identity(identity).model_dump(),
            counts=CountsOut.model_validate(stats, from_attributes=True),
        )
    )
