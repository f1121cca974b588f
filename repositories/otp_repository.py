"""
Persistence for one-time codes (`otps` collection).

The attempt counter and the used flag only ever move through conditional
find_one_and_update calls, so concurrent verifies of the same code race on
the server and never on a read-modify-write in Python.
"""

from __future__ import annotations

from typing import Optional

from bson import ObjectId
from pymongo import ReturnDocument

from repositories.base import BaseRepository, store_operation
from schemas.models.otp import OtpDoc
from shared.datetime_utils import utc_now
from shared.validators import normalize_email


class OtpRepository(BaseRepository):
    collection_name = "otps"

    @store_operation
    async def replace(self, otp: OtpDoc) -> OtpDoc:
        """Delete any prior codes for (email, purpose), then insert *otp*.

        Codes bound to a user only replace that user's earlier codes.
        """
        query: dict = {"email": otp.email, "purpose": otp.purpose}
        if otp.user_id is not None:
            query["user_id"] = otp.user_id
        await self._col.delete_many(query)
        result = await self._col.insert_one(otp.to_mongo())
        otp.id = result.inserted_id
        return otp

    @store_operation
    async def find_latest(
        self, email: str, purpose: str, user_id: Optional[ObjectId] = None
    ) -> Optional[OtpDoc]:
        """Newest code for (email, purpose), restricted to *user_id*'s codes when given."""
        query: dict = {"email": normalize_email(email), "purpose": purpose}
        if user_id is not None:
            query["user_id"] = user_id
        doc = await self._col.find_one(query, sort=[("created_at", -1)])
        return OtpDoc.from_mongo(doc)

    @store_operation
    async def increment_attempts(
        self, otp_id: ObjectId, max_attempts: int
    ) -> Optional[OtpDoc]:
        """Count one failed guess. Returns None if the code is used or already at the ceiling."""
        doc = await self._col.find_one_and_update(
            {"_id": otp_id, "used": False, "attempts": {"$lt": max_attempts}},
            {"$inc": {"attempts": 1}},
            return_document=ReturnDocument.AFTER,
        )
        return OtpDoc.from_mongo(doc)

    @store_operation
    async def mark_used(self, otp_id: ObjectId, max_attempts: int) -> bool:
        """Flip used False -> True while under the attempt ceiling. Only one caller can win."""
        doc = await self._col.find_one_and_update(
            {"_id": otp_id, "used": False, "attempts": {"$lt": max_attempts}},
            {"$set": {"used": True, "used_at": utc_now()}},
        )
        return doc is not None

    @store_operation
    async def delete(self, otp_id: ObjectId) -> None:
        await self._col.delete_one({"_id": otp_id})

    @store_operation
    async def delete_for(self, email: str, purpose: Optional[str] = None) -> int:
        query: dict = {"email": normalize_email(email)}
        if purpose is not None:
            query["purpose"] = purpose
        result = await self._col.delete_many(query)
        return result.deleted_count
