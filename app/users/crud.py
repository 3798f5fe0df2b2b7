import uuid
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from app.db.models import IntakeRecord, Medicine, User, UserStats


async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    q = select(User).where(User.email == email)
    res = await db.execute(q)
    return res.scalars().first()

async def get_user(db: AsyncSession, user_id: uuid.UUID) -> Optional[User]:
    return await db.get(User, user_id)

async def create_user(
    db: AsyncSession,
    *,
    email: str,
    password_hash: str,
    name: Optional[str] = None,
) -> User:
    user = User(
        email=email,
        name=name,
        password_hash=password_hash,
        is_active=True,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user

async def update_user(
    db: AsyncSession,
    user: User,
    *,
    email: Optional[str] = None,
    name: Optional[str] = None,
) -> User:
    if email is not None:
        user.email = email
    if name is not None:
        user.name = name
    await db.commit()
    await db.refresh(user)
    return user

async def delete_user(db: AsyncSession, user_id: uuid.UUID) -> None:
    """Remove the user together with medicines, intake history and stats."""
    # Explicit deletes: SQLite does not enforce ON DELETE CASCADE by default
    for model in (IntakeRecord, UserStats, Medicine):
        await db.execute(delete(model).where(model.user_id == user_id))
    await db.execute(delete(User).where(User.id == user_id))
    await db.commit()
