"""User record endpoints."""

from fastapi import APIRouter, HTTPException, status

from app.core.datetime_utils import COMMON_TIMEZONES
from app.dependencies import Store
from app.schemas.user import UserCreate, UserResponse, UserUpdate

router = APIRouter()


def _not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")


@router.post("/users", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(request: UserCreate, store: Store) -> UserResponse:
    """
    Register a user.

    The birthday's MM-DD key is indexed so the tick can find the user on
    the day.
    """
    user = await store.create(request)
    return UserResponse.model_validate(user)


@router.get("/users/{user_id}", response_model=UserResponse)
async def get_user(user_id: str, store: Store) -> UserResponse:
    user = await store.get(user_id)
    if not user:
        raise _not_found()
    return UserResponse.model_validate(user)


@router.patch("/users/{user_id}", response_model=UserResponse)
async def update_user(user_id: str, request: UserUpdate, store: Store) -> UserResponse:
    """
    Partially update a user.

    Changing the birthday also moves the user to the new MM-DD index key.
    """
    user = await store.update(user_id, request)
    if not user:
        raise _not_found()
    return UserResponse.model_validate(user)


@router.delete("/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(user_id: str, store: Store) -> None:
    """Delete a user. Queued tasks for the user are dropped on delivery."""
    if not await store.delete(user_id):
        raise _not_found()


@router.get("/timezones")
async def get_timezones() -> dict:
    """
    Get list of common timezones for UI dropdown.

    Returns:
        Dict with common_timezones list
    """
    return {"timezones": COMMON_TIMEZONES}
