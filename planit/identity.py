from typing import Iterable, Optional

from fastapi import Depends, Header, Request

from planit.shared.utils import ForbiddenException, UnauthenticatedException, verify_token
from planit.store import ProfileStore

ADMIN = "ADMIN"
USER = "USER"


def get_store(request: Request) -> ProfileStore:
    return request.app.state.store


def get_asset_store(request: Request):
    return request.app.state.assets


async def get_current_user(
    request: Request,
    authorization: Optional[str] = Header(None),
    store: ProfileStore = Depends(get_store),
) -> dict:
    """Resolve ``Authorization: Bearer <token>`` to a stored user record."""
    if not authorization:
        raise UnauthenticatedException("Authorization token missing")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise UnauthenticatedException("Authorization token missing")

    payload = verify_token(token.strip())
    user_id = payload.get("userId")
    if user_id is None:
        raise UnauthenticatedException("Invalid or expired token")

    user = await store.get_user(str(user_id))
    if user is None:
        raise UnauthenticatedException("User not found")

    request.state.user = user
    request.state.user_id = user["id"]
    return user


def authorize_self_or_admin(requested_id: str, caller: dict):
    if str(caller["id"]) == str(requested_id) or caller.get("role") == ADMIN:
        return
    raise ForbiddenException()


def authorize_role(allowed_roles: Iterable[str], caller: dict):
    if caller.get("role") not in set(allowed_roles):
        raise ForbiddenException()
