"""
Response DTOs for authentication and account endpoints.

UserProfileResponse    — public view of the authenticated user (never the hash)
PublicProfileResponse  — another user's profile, personalised when a viewer is known
SignupResponse         — POST /api/auth/signup  (201)
AuthTokensResponse     — POST /api/auth/login, /api/auth/verify-email  (200)
RefreshResponse        — POST /api/auth/refresh  (200)
CodeSentResponse       — endpoints that email a one-time code
UserResponse           — GET /api/auth/me, PUT /api/users/profile, PUT /api/users/email/verify
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from schemas.models.user import UserDoc


class UserProfileResponse(BaseModel):
    """Self view of a user account."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    username: str
    email: str
    display_name: Optional[str] = None
    bio: str = ""
    avatar_url: Optional[str] = None
    email_verified: bool
    follower_count: int = 0
    following_count: int = 0
    created_at: Optional[datetime] = None
    last_login_at: Optional[datetime] = None

    @classmethod
    def from_user(cls, user: UserDoc) -> "UserProfileResponse":
        return cls(
            id=str(user.id),
            username=user.username,
            email=user.email,
            display_name=user.display_name,
            bio=user.bio,
            avatar_url=user.avatar_url,
            email_verified=user.email_verified,
            follower_count=len(user.followers),
            following_count=len(user.following),
            created_at=user.created_at,
            last_login_at=user.last_login_at,
        )


class PublicProfileResponse(BaseModel):
    """Profile of any user as seen by the public; no email, no credential state."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    username: str
    display_name: Optional[str] = None
    bio: str = ""
    avatar_url: Optional[str] = None
    follower_count: int = 0
    following_count: int = 0
    # None for anonymous viewers
    is_following: Optional[bool] = None
    is_self: Optional[bool] = None

    @classmethod
    def from_user(
        cls, user: UserDoc, viewer: Optional[UserDoc] = None
    ) -> "PublicProfileResponse":
        is_following = is_self = None
        if viewer is not None:
            is_self = viewer.id == user.id
            is_following = user.id in viewer.following
        return cls(
            id=str(user.id),
            username=user.username,
            display_name=user.display_name,
            bio=user.bio,
            avatar_url=user.avatar_url,
            follower_count=len(user.followers),
            following_count=len(user.following),
            is_following=is_following,
            is_self=is_self,
        )


class SignupResponse(BaseModel):
    success: bool = True
    message: str
    user: UserProfileResponse
    requires_verification: bool = True
    expires_in: int


class AuthTokensResponse(BaseModel):
    success: bool = True
    message: str
    user: UserProfileResponse
    access_token: str
    refresh_token: str


class RefreshResponse(BaseModel):
    success: bool = True
    access_token: str


class CodeSentResponse(BaseModel):
    success: bool = True
    message: str
    expires_in: int


class UserResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None
    user: UserProfileResponse


class PublicUserResponse(BaseModel):
    success: bool = True
    user: PublicProfileResponse
