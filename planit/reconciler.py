"""Create/update rules for users and their planner and vendor profiles.

Onboarding is an upsert keyed by the owning user: the first call creates the
profile, later calls update it in place. Optional onboarding fields treat
``""`` and "not supplied" the same way: stored as ``None`` on create and
left untouched on update. Partial updates are literal instead, writing every
field present in the request body, empty strings included.
"""
from typing import Iterable, Optional, Tuple
import logging

from planit.identity import authorize_self_or_admin
from planit.schemas import (
    PlannerOnboard, PlannerUpdate, UserLogin, UserSignup, UserUpdate, VendorOnboard, VendorUpdate,
)
from planit.shared.utils import (
    BadRequestException, ConflictException, NotFoundException, UnauthorizedException,
    create_access_token, get_password_hash, verify_password,
)
from planit.store import ProfileKind, ProfileStore

logger = logging.getLogger(__name__)

EXPANDABLE = (ProfileKind.PLANNER, ProfileKind.VENDOR)
REQUIRED_PROFILE_FIELDS = ("company_name", "business_address")


def normalize_optional(value):
    return value if value not in ("", None) else None


def parse_years_of_experience(value: Optional[str]) -> Optional[int]:
    if value is None or str(value).strip() == "":
        return None
    return int(value)


def strip_password(user: dict) -> dict:
    return {k: v for k, v in user.items() if k != "password_hash"}


# --- Users ---
async def signup(store: ProfileStore, payload: UserSignup) -> dict:
    existing = await store.find_user_by_email(payload.email)
    if existing:
        raise ConflictException("User already exists")

    user = await store.create_user({
        "first_name": payload.first_name,
        "last_name": payload.last_name,
        "email": payload.email,
        "phone": payload.phone,
        "password_hash": get_password_hash(payload.password),
        "role": payload.role,
    })
    logger.info("User created", extra={"user_id": user["id"]})
    return strip_password(user)


async def login(store: ProfileStore, credentials: UserLogin) -> Tuple[dict, str]:
    user = await store.find_user_by_email(credentials.email)
    if not user:
        raise NotFoundException("User not found")
    if not verify_password(credentials.password, user["password_hash"]):
        logger.warning("Login rejected", extra={"user_id": user["id"]})
        raise UnauthorizedException("Invalid credentials")

    token = create_access_token(data={"userId": user["id"], "role": user["role"]})
    return strip_password(user), token


async def get_user_profile(store: ProfileStore, user_id: str, expand: Iterable[ProfileKind] = EXPANDABLE) -> dict:
    user = await store.get_user(user_id)
    if not user:
        raise NotFoundException("User not found")

    profile = strip_password(user)
    for kind in expand:
        profile[kind.value] = await store.find_owned_profile(kind, user["id"])
    return profile


async def update_user_profile(store: ProfileStore, user_id: str, patch: UserUpdate, caller: dict) -> dict:
    authorize_self_or_admin(user_id, caller)

    update_data = {k: v for k, v in patch.model_dump().items() if v}
    if not update_data:
        raise BadRequestException("No valid fields to update")
    if "password" in update_data:
        update_data["password_hash"] = get_password_hash(update_data.pop("password"))

    user = await store.update_user(user_id, update_data)
    if not user:
        raise NotFoundException("User not found")
    return strip_password(user)


# --- Planner / Vendor profiles ---
def _onboard_fields(kind: ProfileKind, payload) -> dict:
    fields = {
        "company_name": payload.company_name,
        "business_address": payload.business_address,
        "cac_number": normalize_optional(payload.cac_number),
    }
    if kind is ProfileKind.PLANNER:
        fields["social_media_links"] = normalize_optional(payload.social_media_links)
        fields["portfolio_website"] = normalize_optional(payload.portfolio_website)
    else:
        fields["service_categories"] = normalize_optional(payload.service_categories)
        fields["years_of_experience"] = parse_years_of_experience(payload.years_of_experience)
        fields["phone"] = normalize_optional(payload.phone)
    return fields


async def onboard(store: ProfileStore, kind: ProfileKind, payload) -> Tuple[dict, bool]:
    user = await store.get_user(payload.user_id)
    if not user:
        raise NotFoundException("User not found")

    record, created = await store.upsert_owned_profile(kind, user["id"], _onboard_fields(kind, payload))
    if record is None:
        raise NotFoundException(f"{kind.value.capitalize()} not found")

    logger.info(
        f"{kind.value.capitalize()} onboarded",
        extra={"user_id": user["id"], "profile_id": record["id"], "profile_created": created},
    )
    return record, created


async def onboard_planner(store: ProfileStore, payload: PlannerOnboard) -> Tuple[dict, bool]:
    return await onboard(store, ProfileKind.PLANNER, payload)


async def onboard_vendor(store: ProfileStore, payload: VendorOnboard) -> Tuple[dict, bool]:
    return await onboard(store, ProfileKind.VENDOR, payload)


async def get_owned_profile(store: ProfileStore, kind: ProfileKind, profile_id: str, caller: dict) -> dict:
    record = await store.get_profile(kind, profile_id)
    if not record:
        raise NotFoundException(f"{kind.value.capitalize()} not found")
    authorize_self_or_admin(record["user_id"], caller)

    owner = await store.get_user(record["user_id"])
    record["user"] = strip_password(owner) if owner else None
    return record


async def update_partial(store: ProfileStore, kind: ProfileKind, profile_id: str, patch, caller: dict) -> dict:
    record = await store.get_profile(kind, profile_id)
    if not record:
        raise NotFoundException(f"{kind.value.capitalize()} not found")
    authorize_self_or_admin(record["user_id"], caller)

    update_data = patch.model_dump(exclude_unset=True)
    if not update_data:
        raise BadRequestException("No valid fields to update")
    for field in REQUIRED_PROFILE_FIELDS:
        if field in update_data and update_data[field] is None:
            raise BadRequestException(f"{field} cannot be null")
    if "years_of_experience" in update_data:
        update_data["years_of_experience"] = parse_years_of_experience(update_data["years_of_experience"])

    updated = await store.update_profile(kind, profile_id, update_data)
    if not updated:
        raise NotFoundException(f"{kind.value.capitalize()} not found")
    return updated


async def update_planner(store: ProfileStore, profile_id: str, patch: PlannerUpdate, caller: dict) -> dict:
    return await update_partial(store, ProfileKind.PLANNER, profile_id, patch, caller)


async def update_vendor(store: ProfileStore, profile_id: str, patch: VendorUpdate, caller: dict) -> dict:
    return await update_partial(store, ProfileKind.VENDOR, profile_id, patch, caller)
