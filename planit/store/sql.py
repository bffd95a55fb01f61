from datetime import datetime
from typing import Optional
import logging

from sqlalchemy import select, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from planit.shared.utils import ConflictException
from planit.store.base import ProfileKind, ProfileStore
from planit.store.tables import Base, UserModel, PlannerModel, VendorModel

logger = logging.getLogger(__name__)

PROFILE_TABLES = {
    ProfileKind.PLANNER: PlannerModel,
    ProfileKind.VENDOR: VendorModel,
}


def to_pk(id: str) -> Optional[int]:
    try:
        return int(id)
    except (TypeError, ValueError):
        return None


def to_record(row) -> Optional[dict]:
    if row is None:
        return None
    record = {column.name: getattr(row, column.name) for column in row.__table__.columns}
    record["id"] = str(row.id)
    if "user_id" in record:
        record["user_id"] = str(record["user_id"])
    return record


class SQLProfileStore(ProfileStore):
    backend = "sql"

    def __init__(self, database_url: str):
        self.database_url = database_url
        self.engine = None
        self.session_factory = None

    async def connect(self):
        self.engine = create_async_engine(self.database_url)
        self.session_factory = sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False, autocommit=False, autoflush=False
        )
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Relational store ready", extra={"path": self.engine.url.render_as_string(hide_password=True)})

    async def close(self):
        if self.engine is not None:
            await self.engine.dispose()

    async def ping(self) -> bool:
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError:
            return False

    async def _insert(self, row, conflict_message: str):
        async with self.session_factory() as session:
            session.add(row)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                raise ConflictException(conflict_message)
            await session.refresh(row)
            return to_record(row)

    async def _update(self, model, pk: Optional[int], fields: dict) -> Optional[dict]:
        if pk is None:
            return None
        async with self.session_factory() as session:
            row = await session.get(model, pk)
            if row is None:
                return None
            for key, value in fields.items():
                setattr(row, key, value)
            row.updated_at = datetime.utcnow()
            await session.commit()
            await session.refresh(row)
            return to_record(row)

    # --- Users ---
    async def find_user_by_email(self, email: str) -> Optional[dict]:
        async with self.session_factory() as session:
            result = await session.execute(select(UserModel).where(UserModel.email == email))
            return to_record(result.scalars().first())

    async def get_user(self, user_id: str) -> Optional[dict]:
        pk = to_pk(user_id)
        if pk is None:
            return None
        async with self.session_factory() as session:
            return to_record(await session.get(UserModel, pk))

    async def create_user(self, fields: dict) -> dict:
        return await self._insert(UserModel(**fields), "User already exists")

    async def update_user(self, user_id: str, fields: dict) -> Optional[dict]:
        return await self._update(UserModel, to_pk(user_id), fields)

    # --- Planner / Vendor profiles ---
    async def get_profile(self, kind: ProfileKind, profile_id: str) -> Optional[dict]:
        pk = to_pk(profile_id)
        if pk is None:
            return None
        async with self.session_factory() as session:
            return to_record(await session.get(PROFILE_TABLES[kind], pk))

    async def find_owned_profile(self, kind: ProfileKind, user_id: str) -> Optional[dict]:
        pk = to_pk(user_id)
        if pk is None:
            return None
        model = PROFILE_TABLES[kind]
        async with self.session_factory() as session:
            result = await session.execute(
                select(model).where(model.user_id == pk).order_by(model.id).limit(1)
            )
            return to_record(result.scalars().first())

    async def create_profile(self, kind: ProfileKind, user_id: str, fields: dict) -> dict:
        row = PROFILE_TABLES[kind](user_id=to_pk(user_id), **fields)
        return await self._insert(row, f"A {kind.value} profile already exists for this user")

    async def update_profile(self, kind: ProfileKind, profile_id: str, fields: dict) -> Optional[dict]:
        return await self._update(PROFILE_TABLES[kind], to_pk(profile_id), fields)
