from fastapi import APIRouter, Depends

from expense_api.core.errors import ValidationError
from expense_api.deps import get_users, store_errors
from expense_api.models.users import AvatarRequest, OkResponse, UserProfileRequest
from expense_api.services.ledger import clean_text, require_user_id
from expense_api.services.users import UserService

router = APIRouter(prefix="/users", tags=["users"])


@router.post("/{user_id}", response_model=OkResponse)
async def upsert_user_metadata(
    user_id: str,
    payload: UserProfileRequest,
    users: UserService = Depends(get_users),
):
    user_id = require_user_id(user_id)
    with store_errors("Failed to save user metadata"):
        await users.upsert_profile(user_id, payload)
    return OkResponse()


@router.post("/{user_id}/avatar", response_model=OkResponse)
async def update_avatar(
    user_id: str,
    payload: AvatarRequest,
    users: UserService = Depends(get_users),
):
    user_id = require_user_id(user_id)
    image_url = clean_text(payload.image_url)
    if not image_url:
        raise ValidationError("Missing imageUrl", fields=["imageUrl"])
    with store_errors("Failed to save avatar"):
        await users.set_avatar(user_id, image_url)
    return OkResponse()
