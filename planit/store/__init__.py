from planit.store.base import ProfileKind, ProfileStore
from planit.store.mongo import MongoProfileStore
from planit.store.sql import SQLProfileStore


def build_profile_store(settings) -> ProfileStore:
    """Pick the persistence backend once, at process start."""
    backend = settings.STORE_BACKEND.lower()
    if backend == "mongo":
        return MongoProfileStore(settings.MONGO_URL, settings.MONGO_DB_NAME)
    if backend == "sql":
        return SQLProfileStore(settings.DATABASE_URL)
    raise ValueError(f"Unknown STORE_BACKEND '{settings.STORE_BACKEND}' (expected 'mongo' or 'sql')")


__all__ = [
    "ProfileKind",
    "ProfileStore",
    "MongoProfileStore",
    "SQLProfileStore",
    "build_profile_store",
]
