from __future__ import annotations

from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient

from config.settings import settings


def get_mongo_client(url: Optional[str] = None) -> AsyncIOMotorClient:
    """
    Build the Motor client (defaults to settings.MONGODB_URL).

    Multi-document transactions need a replica set, so the URL is expected
    to carry a `replicaSet=` option (a single-node set is enough).
    """
    return AsyncIOMotorClient(url or settings.MONGODB_URL, tz_aware=True)
