"""
Index bootstrap, run once from the application lifespan.

The unique indexes are what make signup race-safe; the TTL index on
otps.expires_at sweeps codes that were never consumed.
"""

from __future__ import annotations

from pymongo import ASCENDING, DESCENDING

from shared.logging import get_logger

log = get_logger(__name__)


async def ensure_indexes(db) -> None:
    users = db["users"]
    await users.create_index([("email", ASCENDING)], unique=True, name="email_unique")
    await users.create_index(
        [("username", ASCENDING)], unique=True, name="username_unique"
    )

    otps = db["otps"]
    await otps.create_index(
        [("email", ASCENDING), ("purpose", ASCENDING), ("created_at", DESCENDING)],
        name="email_purpose",
    )
    await otps.create_index(
        [("expires_at", ASCENDING)], expireAfterSeconds=0, name="expires_at_ttl"
    )

    log.info("indexes_ensured", collections=["users", "otps"])
