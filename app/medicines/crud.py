import uuid
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import Medicine
from app.db.schema import DEFAULT_PHOTO_URL, MedicineCreate, MedicineUpdate


async def list_medicines(db: AsyncSession, user_id: uuid.UUID, active_only: bool = False) -> List[Medicine]:
    q = select(Medicine).where(Medicine.user_id == user_id).order_by(Medicine.created_at)
    if active_only:
        q = q.where(Medicine.status == "active")
    res = await db.execute(q)
    return list(res.scalars().all())


async def list_users_with_active_medicines(db: AsyncSession) -> List[uuid.UUID]:
    res = await db.execute(
        select(Medicine.user_id).where(Medicine.status == "active").distinct()
    )
    return list(res.scalars().all())


async def get_medicine(db: AsyncSession, user_id: uuid.UUID, medicine_id: uuid.UUID) -> Optional[Medicine]:
    res = await db.execute(
        select(Medicine).where(Medicine.id == medicine_id, Medicine.user_id == user_id)
    )
    return res.scalar_one_or_none()


async def create_medicine(db: AsyncSession, user_id: uuid.UUID, data: MedicineCreate) -> Medicine:
    values = data.model_dump()
    values["photo_url"] = values.get("photo_url") or DEFAULT_PHOTO_URL
    med = Medicine(user_id=user_id, status="active", **values)
    db.add(med)
    await db.commit()
    await db.refresh(med)
    return med


async def update_medicine(db: AsyncSession, med: Medicine, data: MedicineUpdate) -> Medicine:
    for field, value in data.model_dump(exclude_unset=True).items():
        if value is None and field not in ("description", "photo_url"):
            continue
        setattr(med, field, value)
    await db.commit()
    await db.refresh(med)
    return med


async def end_medicine(db: AsyncSession, med: Medicine) -> Medicine:
    """End the course: no days left and no more alarms."""
    med.duration = 0
    med.status = "completed"
    await db.commit()
    await db.refresh(med)
    return med


async def delete_medicine(db: AsyncSession, med: Medicine) -> None:
    # Intake history is kept on purpose (see IntakeRecord)
    await db.delete(med)
    await db.commit()
