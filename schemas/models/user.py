"""
User document model.

Maps to the `users` MongoDB collection.

refresh_tokens holds SHA-256 digests of the live refresh tokens, never the
tokens themselves. followers / following / bookmarked_poems only matter to
the auth core as cleanup targets when an account is deleted.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from schemas.models.base import MongoBaseModel, PyObjectId


class UserDoc(MongoBaseModel):
    """Document model for the `users` collection."""

    username: str
    email: str
    display_name: Optional[str] = None
    password_hash: Optional[str] = None
    email_verified: bool = False
    password_changed_at: Optional[datetime] = None
    refresh_tokens: list[str] = []

    bio: str = ""
    avatar_url: Optional[str] = None

    followers: list[PyObjectId] = []
    following: list[PyObjectId] = []
    bookmarked_poems: list[PyObjectId] = []

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_login_at: Optional[datetime] = None
