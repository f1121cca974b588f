"""
Credential store backed by the `users` collection.

Every mutation is a single-document update, so the fields that must change
together (password hash + password_changed_at + refresh_tokens, or email +
email_verified) cannot be observed half-applied.
"""

from __future__ import annotations

from typing import Any, Optional

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from errors import DuplicateIdentityError
from repositories.base import BaseRepository, store_operation
from schemas.models.user import UserDoc
from shared.crypto import hash_token, verify_password
from shared.datetime_utils import utc_now
from shared.logging import get_logger
from shared.validators import normalize_email, normalize_username

log = get_logger(__name__)

# Fields a user may change through the profile endpoint
PROFILE_FIELDS = ("display_name", "bio", "avatar_url")


class UserRepository(BaseRepository):
    collection_name = "users"

    # ── Lookups ──────────────────────────────────────────────────────────────

    @store_operation
    async def find_by_id(self, user_id: ObjectId) -> Optional[UserDoc]:
        doc = await self._col.find_one({"_id": user_id})
        return UserDoc.from_mongo(doc)

    @store_operation
    async def find_by_email(self, email: str) -> Optional[UserDoc]:
        doc = await self._col.find_one({"email": normalize_email(email)})
        return UserDoc.from_mongo(doc)

    @store_operation
    async def find_by_username(self, username: str) -> Optional[UserDoc]:
        doc = await self._col.find_one({"username": normalize_username(username)})
        return UserDoc.from_mongo(doc)

    @store_operation
    async def identity_taken(self, username: str, email: str) -> Optional[str]:
        """Return "username" or "email" when either already belongs to an account."""
        if await self._col.find_one(
            {"username": normalize_username(username)}, {"_id": 1}
        ):
            return "username"
        if await self._col.find_one({"email": normalize_email(email)}, {"_id": 1}):
            return "email"
        return None

    # ── Creation / deletion ──────────────────────────────────────────────────

    @store_operation
    async def create_user(
        self,
        username: str,
        email: str,
        password_hash: str,
        display_name: Optional[str] = None,
    ) -> UserDoc:
        """Insert an unverified user.

        Raises:
            DuplicateIdentityError: the unique index rejected the username or email.
        """
        now = utc_now()
        user = UserDoc(
            username=normalize_username(username),
            email=normalize_email(email),
            display_name=display_name,
            password_hash=password_hash,
            email_verified=False,
            created_at=now,
            updated_at=now,
        )
        try:
            result = await self._col.insert_one(user.to_mongo())
        except DuplicateKeyError:
            # The pre-check lost a race; report which identity collided
            field = await self.identity_taken(user.username, user.email) or "email"
            raise DuplicateIdentityError(f"{field} is already registered", field=field)
        user.id = result.inserted_id
        log.info("user_created", user_id=str(user.id))
        return user

    @store_operation
    async def delete_user(self, user_id: ObjectId) -> bool:
        result = await self._col.delete_one({"_id": user_id})
        return result.deleted_count == 1

    # ── Credentials ──────────────────────────────────────────────────────────

    @staticmethod
    def verify_password(user: UserDoc, candidate: str) -> bool:
        return verify_password(candidate, user.password_hash)

    @store_operation
    async def set_password(self, user_id: ObjectId, new_hash: str) -> bool:
        """Replace the hash, stamp password_changed_at and revoke every refresh token."""
        now = utc_now()
        result = await self._col.update_one(
            {"_id": user_id},
            {
                "$set": {
                    "password_hash": new_hash,
                    "password_changed_at": now,
                    "refresh_tokens": [],
                    "updated_at": now,
                }
            },
        )
        return result.matched_count == 1

    # ── Refresh tokens (stored as digests) ───────────────────────────────────

    @store_operation
    async def add_refresh_token(self, user_id: ObjectId, refresh_token: str) -> None:
        await self._col.update_one(
            {"_id": user_id},
            {"$addToSet": {"refresh_tokens": hash_token(refresh_token)}},
        )

    @store_operation
    async def revoke_refresh_token(
        self, user_id: ObjectId, refresh_token: str
    ) -> bool:
        result = await self._col.update_one(
            {"_id": user_id},
            {"$pull": {"refresh_tokens": hash_token(refresh_token)}},
        )
        return result.modified_count == 1

    @store_operation
    async def revoke_all_refresh_tokens(self, user_id: ObjectId) -> None:
        await self._col.update_one(
            {"_id": user_id}, {"$set": {"refresh_tokens": []}}
        )

    @store_operation
    async def has_refresh_token(self, user_id: ObjectId, refresh_token: str) -> bool:
        doc = await self._col.find_one(
            {"_id": user_id, "refresh_tokens": hash_token(refresh_token)},
            {"_id": 1},
        )
        return doc is not None

    # ── Verification / profile ───────────────────────────────────────────────

    @store_operation
    async def mark_email_verified(self, user_id: ObjectId) -> Optional[UserDoc]:
        now = utc_now()
        doc = await self._col.find_one_and_update(
            {"_id": user_id},
            {
                "$set": {
                    "email_verified": True,
                    "last_login_at": now,
                    "updated_at": now,
                }
            },
            return_document=ReturnDocument.AFTER,
        )
        return UserDoc.from_mongo(doc)

    @store_operation
    async def touch_last_login(self, user_id: ObjectId) -> None:
        await self._col.update_one(
            {"_id": user_id}, {"$set": {"last_login_at": utc_now()}}
        )

    @store_operation
    async def update_email(
        self, user_id: ObjectId, new_email: str
    ) -> Optional[UserDoc]:
        """Switch to *new_email* and mark it verified in one write."""
        try:
            doc = await self._col.find_one_and_update(
                {"_id": user_id},
                {
                    "$set": {
                        "email": normalize_email(new_email),
                        "email_verified": True,
                        "updated_at": utc_now(),
                    }
                },
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError:
            raise DuplicateIdentityError("email is already registered", field="email")
        return UserDoc.from_mongo(doc)

    @store_operation
    async def update_profile(
        self, user_id: ObjectId, changes: dict[str, Any]
    ) -> Optional[UserDoc]:
        """Apply allow-listed profile changes; unknown keys are dropped."""
        fields = {k: v for k, v in changes.items() if k in PROFILE_FIELDS}
        fields["updated_at"] = utc_now()
        doc = await self._col.find_one_and_update(
            {"_id": user_id},
            {"$set": fields},
            return_document=ReturnDocument.AFTER,
        )
        return UserDoc.from_mongo(doc)
