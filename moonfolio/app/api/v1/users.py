"""
User endpoints.

- POST /users: create a user (password stored as bcrypt hash)
- GET /users/{id}: public view of a user
"""
from fastapi import APIRouter, Depends

from moonfolio.app.api.v1.dependencies import get_ledger_store
from moonfolio.app.logging_config import get_logger
from moonfolio.app.schemas.common import ErrorResponse
from moonfolio.app.schemas.users import USCreateItem, USReadItem
from moonfolio.app.services import user_service
from moonfolio.app.services.ledger_store import LedgerStore

logger = get_logger(__name__)

user_router = APIRouter(prefix="/users", tags=["US (Users)"])


@user_router.post("", response_model=USReadItem, status_code=201,
                  responses={400: {"model": ErrorResponse}})
async def create_user(item: USCreateItem, store: LedgerStore = Depends(get_ledger_store)) -> USReadItem:
    user = await user_service.create_user(store, item)
    return USReadItem.model_validate(user)


@user_router.get("/{user_id}", response_model=USReadItem, responses={404: {"model": ErrorResponse}})
async def get_user(user_id: int, store: LedgerStore = Depends(get_ledger_store)) -> USReadItem:
    return USReadItem.model_validate(await user_service.get_user(store, user_id))
