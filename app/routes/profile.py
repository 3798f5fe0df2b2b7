import uuid

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import get_current_user
from app.db.database import get_db
from app.db.models import User
from app.db.schema import UserRead, UserUpdate
from app.scheduling.registry import AlarmRegistry, get_alarm_registry
from app.users import crud as user_crud

router = APIRouter()


async def _load_user(db: AsyncSession, current_user) -> User:
    user = await user_crud.get_user(db, uuid.UUID(current_user.user_id))
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.get("/", response_model=UserRead)
async def get_my_profile(
    db: AsyncSession = Depends(get_db),
    current_user=Depends(get_current_user),
):
    """Get the profile of the current user."""
    return await _load_user(db, current_user)


@router.patch("/", response_model=UserRead)
async def update_my_profile(
    payload: UserUpdate,
    db: AsyncSession = Depends(get_db),
    current_user=Depends(get_current_user),
):
    """Change name and/or e-mail. The e-mail must not belong to another user."""
    user = await _load_user(db, current_user)

    if payload.email is not None and payload.email != user.email:
        existing = await user_crud.get_user_by_email(db, payload.email)
        if existing and existing.id != user.id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Email already in use by another account.",
            )

    return await user_crud.update_user(db, user, email=payload.email, name=payload.name)


@router.delete("/", status_code=status.HTTP_204_NO_CONTENT)
async def delete_my_account(
    db: AsyncSession = Depends(get_db),
    current_user=Depends(get_current_user),
    registry: AlarmRegistry = Depends(get_alarm_registry),
):
    """Delete the account with its medicines, history and stats."""
    user = await _load_user(db, current_user)
    await user_crud.delete_user(db, user.id)
    registry.drop(current_user.user_id)
