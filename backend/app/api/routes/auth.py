"""
Authentication routes

P1-3: Rate limited to prevent brute force attacks

Public flows:
- Registration with an emailed verification code
- Login with lockout, refresh token exchange
- Password reset via emailed code (no account enumeration)
"""
from fastapi import APIRouter, Depends, Request, status

from app.api.deps import get_auth_service, get_current_user
from app.core.rate_limit import limiter, auth_limit
from app.core.request_utils import extract_client_ip, resolve_language
from app.models.user import User
from app.schemas.auth import (
    ChangePasswordRequest,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    RefreshTokenRequest,
    RegisterRequest,
    ResetPasswordRequest,
    SendCodeRequest,
    UserSummary,
)
from app.services.auth_service import AuthService, LoginResult
from app.services.captcha import CaptchaChallenge

router = APIRouter()
user_router = APIRouter()

RESET_REQUEST_MESSAGE = "If the email exists, a reset code has been sent"


def _login_response(result: LoginResult) -> LoginResponse:
    return LoginResponse(
        access_token=result.tokens.access_token,
        refresh_token=result.tokens.refresh_token,
        expires_at=result.tokens.expires_at,
        user=UserSummary.model_validate(result.user),
    )


@router.post("/register", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(auth_limit)
async def register(
    request: Request,
    body: RegisterRequest,
    auth: AuthService = Depends(get_auth_service),
):
    """Create an account from a valid registration code."""
    await auth.register(
        username=body.username,
        password=body.password,
        email=body.email,
        code=body.code,
        client_ip=extract_client_ip(request),
        challenge=CaptchaChallenge.from_request(request),
    )
    return MessageResponse(message="User registered successfully")


@router.post("/send-register-code", response_model=MessageResponse)
@limiter.limit(auth_limit)
async def send_register_code(
    request: Request,
    body: SendCodeRequest,
    auth: AuthService = Depends(get_auth_service),
):
    """
    Issue and email a registration code.

    Fails with 500 when no mail transport is configured or delivery fails.
    """
    await auth.send_register_code(body.email, resolve_language(request, body.lang))
    return MessageResponse(message="Verification code sent")


@router.post("/login", response_model=LoginResponse)
@limiter.limit(auth_limit)
async def login(
    request: Request,
    body: LoginRequest,
    auth: AuthService = Depends(get_auth_service),
):
    """Log in with username or email. Returns an access/refresh token pair."""
    result = await auth.login(
        identifier=body.username,
        password=body.password,
        client_ip=extract_client_ip(request),
        challenge=CaptchaChallenge.from_request(request),
    )
    return _login_response(result)


@router.post("/refresh-token", response_model=LoginResponse)
async def refresh_token(
    body: RefreshTokenRequest,
    auth: AuthService = Depends(get_auth_service),
):
    """Exchange a refresh token for a fresh pair."""
    result = await auth.refresh(body.refresh_token)
    return _login_response(result)


@router.post("/forgot-password", response_model=MessageResponse)
@limiter.limit(auth_limit)
async def forgot_password(
    request: Request,
    body: SendCodeRequest,
    auth: AuthService = Depends(get_auth_service),
):
    """
    Email a reset code.

    Always returns the same message; never reveals if the email exists.
    """
    auth.send_reset_code(body.email, resolve_language(request, body.lang))
    return MessageResponse(message=RESET_REQUEST_MESSAGE)


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(
    body: ResetPasswordRequest,
    auth: AuthService = Depends(get_auth_service),
):
    """Set a new password with a valid reset code."""
    await auth.reset_password(body.email, body.code, body.new_password)
    return MessageResponse(message="Password reset successfully")


# ============================================================
# Authenticated user
# ============================================================

@user_router.post("/send-register-code", response_model=MessageResponse)
@limiter.limit(auth_limit)
async def send_register_code_alias(
    request: Request,
    body: SendCodeRequest,
    auth: AuthService = Depends(get_auth_service),
):
    await auth.send_register_code(body.email, resolve_language(request, body.lang))
    return MessageResponse(message="Verification code sent")


@user_router.get("/me", response_model=UserSummary)
async def get_me(current_user: User = Depends(get_current_user)):
    return current_user


@user_router.post("/change-password", response_model=MessageResponse)
async def change_password(
    body: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
    auth: AuthService = Depends(get_auth_service),
):
    await auth.change_password(current_user, body.current_password, body.new_password)
    return MessageResponse(message="Password changed successfully")
