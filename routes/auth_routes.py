"""
Authentication endpoints.

POST /api/auth/signup                  — create an unverified account, email a code
POST /api/auth/verify-email            — consume the code, return tokens
POST /api/auth/resend-verification    — generic response, new code if applicable
POST /api/auth/login                   — email + password → tokens
POST /api/auth/refresh                 — refresh token → new access token
POST /api/auth/logout                  — revoke one refresh token
POST /api/auth/logout-all              — revoke every refresh token
GET  /api/auth/me                      — current user
POST /api/auth/request-password-reset  — generic response, code if registered
POST /api/auth/reset-password          — consume the code, set the password
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from dependencies import get_auth_service, get_current_user, rate_limit
from infrastructure.cache.rate_limiter import AUTH, CODE_REQUEST, OTP_VERIFY
from schemas.dto.requests.auth import (
    LoginRequest,
    LogoutRequest,
    RefreshRequest,
    RequestPasswordResetRequest,
    ResendVerificationRequest,
    ResetPasswordRequest,
    SignupRequest,
    VerifyEmailRequest,
)
from schemas.dto.responses.auth import (
    AuthTokensResponse,
    CodeSentResponse,
    RefreshResponse,
    SignupResponse,
    UserProfileResponse,
    UserResponse,
)
from schemas.dto.responses.common import MessageResponse
from schemas.models.user import UserDoc
from services.auth_service import AuthService

router = APIRouter(prefix="/api/auth", tags=["auth"])

_RESET_REQUESTED = "if an account exists for this email, a reset code has been sent"
_RESEND_REQUESTED = (
    "if this email belongs to an unverified account, a new code has been sent"
)


@router.post(
    "/signup",
    status_code=status.HTTP_201_CREATED,
    response_model=SignupResponse,
    dependencies=[Depends(rate_limit(AUTH))],
)
async def signup(
    body: SignupRequest, auth: AuthService = Depends(get_auth_service)
) -> SignupResponse:
    result = await auth.signup(
        body.username, body.email, body.password, body.display_name
    )
    return SignupResponse(
        message="account created, check your email for a verification code",
        user=UserProfileResponse.from_user(result.user),
        expires_in=result.expires_in,
    )


@router.post(
    "/verify-email",
    response_model=AuthTokensResponse,
    dependencies=[Depends(rate_limit(OTP_VERIFY))],
)
async def verify_email(
    body: VerifyEmailRequest, auth: AuthService = Depends(get_auth_service)
) -> AuthTokensResponse:
    user, pair = await auth.verify_email(body.email, body.code)
    return AuthTokensResponse(
        message="email verified",
        user=UserProfileResponse.from_user(user),
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
    )


@router.post(
    "/resend-verification",
    response_model=CodeSentResponse,
    dependencies=[Depends(rate_limit(CODE_REQUEST))],
)
async def resend_verification(
    body: ResendVerificationRequest, auth: AuthService = Depends(get_auth_service)
) -> CodeSentResponse:
    await auth.resend_verification(body.email)
    return CodeSentResponse(
        message=_RESEND_REQUESTED, expires_in=auth.verification_ttl()
    )


@router.post(
    "/login",
    response_model=AuthTokensResponse,
    dependencies=[Depends(rate_limit(AUTH))],
)
async def login(
    body: LoginRequest, auth: AuthService = Depends(get_auth_service)
) -> AuthTokensResponse:
    user, pair = await auth.login(body.email, body.password)
    return AuthTokensResponse(
        message="login successful",
        user=UserProfileResponse.from_user(user),
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
    )


@router.post("/refresh", response_model=RefreshResponse)
async def refresh(
    body: RefreshRequest, auth: AuthService = Depends(get_auth_service)
) -> RefreshResponse:
    return RefreshResponse(access_token=await auth.refresh(body.refresh_token))


@router.post("/logout", response_model=MessageResponse)
async def logout(
    body: LogoutRequest,
    user: UserDoc = Depends(get_current_user),
    auth: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    await auth.logout(user.id, body.refresh_token)
    return MessageResponse(message="logged out")


@router.post("/logout-all", response_model=MessageResponse)
async def logout_all(
    user: UserDoc = Depends(get_current_user),
    auth: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    await auth.logout_all(user.id)
    return MessageResponse(message="logged out from all devices")


@router.get("/me", response_model=UserResponse)
async def me(user: UserDoc = Depends(get_current_user)) -> UserResponse:
    return UserResponse(user=UserProfileResponse.from_user(user))


@router.post(
    "/request-password-reset",
    response_model=MessageResponse,
    dependencies=[Depends(rate_limit(CODE_REQUEST))],
)
async def request_password_reset(
    body: RequestPasswordResetRequest, auth: AuthService = Depends(get_auth_service)
) -> MessageResponse:
    await auth.request_password_reset(body.email)
    return MessageResponse(message=_RESET_REQUESTED)


@router.post(
    "/reset-password",
    response_model=MessageResponse,
    dependencies=[Depends(rate_limit(OTP_VERIFY))],
)
async def reset_password(
    body: ResetPasswordRequest, auth: AuthService = Depends(get_auth_service)
) -> MessageResponse:
    await auth.reset_password(body.email, body.code, body.new_password)
    return MessageResponse(
        message="password has been reset, please log in with your new password"
    )
