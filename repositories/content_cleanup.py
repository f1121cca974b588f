"""
Cascading cleanup for account deletion.

Poems, collections and the social graph belong to other parts of Poemvy; this
collaborator only knows the fields that reference a user. Every step is a
bulk delete or $pull, so running purge_user twice is harmless.
"""

from __future__ import annotations

from typing import Protocol

from bson import ObjectId

from repositories.base import store_operation
from shared.logging import get_logger

log = get_logger(__name__)


class AccountCleanup(Protocol):
    async def purge_user(self, user_id: ObjectId) -> None: ...


class MongoContentCleanup:
    collection_name = "content"

    def __init__(self, db) -> None:
        self._users = db["users"]
        self._poems = db["poems"]
        self._collections = db["collections"]

    @store_operation
    async def purge_user(self, user_id: ObjectId) -> None:
        poem_ids = await self._poems.distinct("_id", {"author": user_id})

        deleted_poems = await self._poems.delete_many({"author": user_id})
        deleted_collections = await self._collections.delete_many({"owner": user_id})

        # Social graph
        await self._users.update_many(
            {"followers": user_id}, {"$pull": {"followers": user_id}}
        )
        await self._users.update_many(
            {"following": user_id}, {"$pull": {"following": user_id}}
        )

        # Interactions on other people's poems
        await self._poems.update_many({"likes": user_id}, {"$pull": {"likes": user_id}})
        await self._poems.update_many(
            {"comments.user": user_id}, {"$pull": {"comments": {"user": user_id}}}
        )
        await self._collections.update_many(
            {"followers": user_id}, {"$pull": {"followers": user_id}}
        )

        if poem_ids:
            await self._users.update_many(
                {"bookmarked_poems": {"$in": poem_ids}},
                {"$pull": {"bookmarked_poems": {"$in": poem_ids}}},
            )
            await self._collections.update_many(
                {"poems": {"$in": poem_ids}},
                {"$pull": {"poems": {"$in": poem_ids}}},
            )

        log.info(
            "account_content_purged",
            user_id=str(user_id),
            poems_deleted=deleted_poems.deleted_count,
            collections_deleted=deleted_collections.deleted_count,
        )
