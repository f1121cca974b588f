"""
Authenticated account endpoints.

PUT    /api/users/password/request    — re-verify password, email a change code
PUT    /api/users/password/verify     — consume the code, set the new password
PUT    /api/users/email               — re-verify password, email a code to the new address
PUT    /api/users/email/verify        — consume the code, switch the email
PUT    /api/users/profile             — allow-listed profile update
GET    /api/users/profile/{username}  — public profile (personalised when signed in)
DELETE /api/users/me                  — delete the account and its content
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends

from dependencies import (
    get_account_service,
    get_current_user,
    get_optional_user,
    rate_limit,
)
from infrastructure.cache.rate_limiter import CODE_REQUEST, EMAIL_CHANGE, OTP_VERIFY
from schemas.dto.requests.user import (
    DeleteAccountRequest,
    RequestEmailChangeRequest,
    RequestPasswordChangeRequest,
    UpdateProfileRequest,
    VerifyEmailChangeRequest,
    VerifyPasswordChangeRequest,
)
from schemas.dto.responses.auth import (
    CodeSentResponse,
    PublicProfileResponse,
    PublicUserResponse,
    UserProfileResponse,
    UserResponse,
)
from schemas.dto.responses.common import MessageResponse
from schemas.models.user import UserDoc
from services.account_service import AccountService

router = APIRouter(prefix="/api/users", tags=["users"])


@router.put(
    "/password/request",
    response_model=CodeSentResponse,
    dependencies=[Depends(rate_limit(CODE_REQUEST))],
)
async def request_password_change(
    body: RequestPasswordChangeRequest,
    user: UserDoc = Depends(get_current_user),
    accounts: AccountService = Depends(get_account_service),
) -> CodeSentResponse:
    expires = await accounts.request_password_change(user, body.current_password)
    return CodeSentResponse(
        message="a confirmation code has been sent to your email", expires_in=expires
    )


@router.put(
    "/password/verify",
    response_model=MessageResponse,
    dependencies=[Depends(rate_limit(OTP_VERIFY))],
)
async def verify_password_change(
    body: VerifyPasswordChangeRequest,
    user: UserDoc = Depends(get_current_user),
    accounts: AccountService = Depends(get_account_service),
) -> MessageResponse:
    await accounts.verify_password_change(user, body.code, body.new_password)
    return MessageResponse(
        message="password changed, please log in again on your other devices"
    )


@router.put(
    "/email",
    response_model=CodeSentResponse,
    dependencies=[Depends(rate_limit(EMAIL_CHANGE))],
)
async def request_email_change(
    body: RequestEmailChangeRequest,
    user: UserDoc = Depends(get_current_user),
    accounts: AccountService = Depends(get_account_service),
) -> CodeSentResponse:
    expires = await accounts.request_email_change(
        user, body.current_password, body.new_email
    )
    return CodeSentResponse(
        message="a confirmation code has been sent to the new email address",
        expires_in=expires,
    )


@router.put(
    "/email/verify",
    response_model=UserResponse,
    dependencies=[Depends(rate_limit(OTP_VERIFY))],
)
async def verify_email_change(
    body: VerifyEmailChangeRequest,
    user: UserDoc = Depends(get_current_user),
    accounts: AccountService = Depends(get_account_service),
) -> UserResponse:
    updated = await accounts.verify_email_change(user, body.new_email, body.code)
    return UserResponse(
        message="email updated", user=UserProfileResponse.from_user(updated)
    )


@router.put("/profile", response_model=UserResponse)
async def update_profile(
    body: UpdateProfileRequest,
    user: UserDoc = Depends(get_current_user),
    accounts: AccountService = Depends(get_account_service),
) -> UserResponse:
    changes = body.model_dump(exclude_unset=True)
    updated = await accounts.update_profile(user, changes)
    return UserResponse(
        message="profile updated", user=UserProfileResponse.from_user(updated)
    )


@router.get("/profile/{username}", response_model=PublicUserResponse)
async def public_profile(
    username: str,
    viewer: Optional[UserDoc] = Depends(get_optional_user),
    accounts: AccountService = Depends(get_account_service),
) -> PublicUserResponse:
    user = await accounts.get_public_profile(username)
    return PublicUserResponse(user=PublicProfileResponse.from_user(user, viewer))


@router.delete("/me", response_model=MessageResponse)
async def delete_account(
    body: DeleteAccountRequest,
    user: UserDoc = Depends(get_current_user),
    accounts: AccountService = Depends(get_account_service),
) -> MessageResponse:
    await accounts.delete_account(user, body.password)
    return MessageResponse(message="account deleted")
