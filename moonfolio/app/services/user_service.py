"""
User management over the ledger store.

Users are optional portfolio owners: created with a username and a
bcrypt-hashed password, looked up by id or username.
"""
from typing import Optional

import structlog

from moonfolio.app.db.models import User
from moonfolio.app.schemas.users import USCreateItem
from moonfolio.app.services.auth_service import hash_password, verify_password
from moonfolio.app.services.errors import InvalidArgumentError, NotFoundError
from moonfolio.app.services.ledger_store import LedgerStore

logger = structlog.get_logger(__name__)


async def create_user(store: LedgerStore, item: USCreateItem) -> User:
    """
    Create a user.

    Raises:
        InvalidArgumentError: username already taken
    """
    async def _create() -> User:
        if await store.find_user_by_username(item.username):
            raise InvalidArgumentError("Username already taken", details={"username": item.username})
        return await store.add_user(User(username=item.username, hashed_password=hash_password(item.password)))

    user = await store.run_in_unit_of_work(_create)
    logger.info("User created", user_id=user.id, username=user.username)
    return user


async def get_user(store: LedgerStore, user_id: int) -> User:
    user = await store.get_user(user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found", details={"user_id": user_id})
    return user


async def authenticate(store: LedgerStore, username: str, password: str) -> Optional[User]:
    """Return the user when the credentials match, None otherwise."""
    user = await store.find_user_by_username(username)
    if user is None or not verify_password(password, user.hashed_password):
        return None
    return user
