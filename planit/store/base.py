"""Persistence contract shared by the document and relational backends.

Records cross this boundary as plain dicts keyed by snake_case field names.
``id`` and ``user_id`` are always strings so callers never depend on the
identifier type of the active backend.
"""
from enum import Enum
from typing import Optional, Tuple


class ProfileKind(str, Enum):
    PLANNER = "planner"
    VENDOR = "vendor"

    @property
    def collection(self) -> str:
        return f"{self.value}s"


class ProfileStore:
    backend = "abstract"

    async def connect(self):
        raise NotImplementedError

    async def close(self):
        raise NotImplementedError

    async def ping(self) -> bool:
        raise NotImplementedError

    # --- Users ---
    async def find_user_by_email(self, email: str) -> Optional[dict]:
        raise NotImplementedError

    async def get_user(self, user_id: str) -> Optional[dict]:
        raise NotImplementedError

    async def create_user(self, fields: dict) -> dict:
        raise NotImplementedError

    async def update_user(self, user_id: str, fields: dict) -> Optional[dict]:
        raise NotImplementedError

    # --- Planner / Vendor profiles ---
    async def get_profile(self, kind: ProfileKind, profile_id: str) -> Optional[dict]:
        raise NotImplementedError

    async def find_owned_profile(self, kind: ProfileKind, user_id: str) -> Optional[dict]:
        """Return the earliest-created profile owned by ``user_id``."""
        raise NotImplementedError

    async def create_profile(self, kind: ProfileKind, user_id: str, fields: dict) -> dict:
        raise NotImplementedError

    async def update_profile(self, kind: ProfileKind, profile_id: str, fields: dict) -> Optional[dict]:
        raise NotImplementedError

    async def upsert_owned_profile(self, kind: ProfileKind, user_id: str, fields: dict) -> Tuple[Optional[dict], bool]:
        """Create the profile owned by ``user_id`` or update it in place.

        On create every field is written, ``None`` included. On update only
        fields with a value are written so omitted optionals keep what is
        stored. Returns ``(record, created)``; record is ``None`` when the
        existing profile disappeared before the update landed.
        """
        existing = await self.find_owned_profile(kind, user_id)
        if existing is None:
            return await self.create_profile(kind, user_id, fields), True

        changes = {k: v for k, v in fields.items() if v is not None}
        return await self.update_profile(kind, existing["id"], changes), False
