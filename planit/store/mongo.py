from datetime import datetime
from typing import Optional
import logging

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from planit.models import UserDB, PlannerDB, VendorDB
from planit.shared.utils import get_db_client, ConflictException
from planit.store.base import ProfileKind, ProfileStore

logger = logging.getLogger(__name__)

PROFILE_MODELS = {
    ProfileKind.PLANNER: PlannerDB,
    ProfileKind.VENDOR: VendorDB,
}

# --- Helper ---
def str_to_oid(id: str) -> Optional[ObjectId]:
    if not isinstance(id, str) or not ObjectId.is_valid(id):
        return None
    return ObjectId(id)

def to_record(doc: Optional[dict]) -> Optional[dict]:
    if doc is None:
        return None
    doc["id"] = str(doc.pop("_id"))
    return doc


class MongoProfileStore(ProfileStore):
    backend = "mongo"

    def __init__(self, url: str, db_name: str):
        self.url = url
        self.db_name = db_name
        self.client = None
        self.db = None

    async def connect(self):
        self.client = get_db_client(self.url)
        self.db = self.client[self.db_name]
        await self.db.users.create_index("email", unique=True)
        for kind in ProfileKind:
            await self.db[kind.collection].create_index("user_id", unique=True)
        logger.info(f"Connected to MongoDB database {self.db_name}")

    async def close(self):
        if self.client is not None:
            self.client.close()

    async def ping(self) -> bool:
        try:
            await self.client.admin.command("ping")
            return True
        except Exception:
            return False

    # --- Users ---
    async def find_user_by_email(self, email: str) -> Optional[dict]:
        return to_record(await self.db.users.find_one({"email": email}))

    async def get_user(self, user_id: str) -> Optional[dict]:
        oid = str_to_oid(user_id)
        if oid is None:
            return None
        return to_record(await self.db.users.find_one({"_id": oid}))

    async def create_user(self, fields: dict) -> dict:
        user_db = UserDB(**fields)
        try:
            new_user = await self.db.users.insert_one(user_db.model_dump(by_alias=True, exclude={"id"}))
        except DuplicateKeyError:
            raise ConflictException("User already exists")
        return to_record(await self.db.users.find_one({"_id": new_user.inserted_id}))

    async def update_user(self, user_id: str, fields: dict) -> Optional[dict]:
        oid = str_to_oid(user_id)
        if oid is None:
            return None
        updated = await self.db.users.find_one_and_update(
            {"_id": oid},
            {"$set": {**fields, "updated_at": datetime.utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        return to_record(updated)

    # --- Planner / Vendor profiles ---
    async def get_profile(self, kind: ProfileKind, profile_id: str) -> Optional[dict]:
        oid = str_to_oid(profile_id)
        if oid is None:
            return None
        return to_record(await self.db[kind.collection].find_one({"_id": oid}))

    async def find_owned_profile(self, kind: ProfileKind, user_id: str) -> Optional[dict]:
        # ObjectIds grow with insertion time, so ascending _id is creation order
        doc = await self.db[kind.collection].find_one({"user_id": user_id}, sort=[("_id", 1)])
        return to_record(doc)

    async def create_profile(self, kind: ProfileKind, user_id: str, fields: dict) -> dict:
        profile_db = PROFILE_MODELS[kind](user_id=user_id, **fields)
        collection = self.db[kind.collection]
        try:
            new_profile = await collection.insert_one(profile_db.model_dump(by_alias=True, exclude={"id"}))
        except DuplicateKeyError:
            raise ConflictException(f"A {kind.value} profile already exists for this user")
        return to_record(await collection.find_one({"_id": new_profile.inserted_id}))

    async def update_profile(self, kind: ProfileKind, profile_id: str, fields: dict) -> Optional[dict]:
        oid = str_to_oid(profile_id)
        if oid is None:
            return None
        updated = await self.db[kind.collection].find_one_and_update(
            {"_id": oid},
            {"$set": {**fields, "updated_at": datetime.utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        return to_record(updated)
