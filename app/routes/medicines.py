import uuid
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import get_current_user
from app.db.database import get_db
from app.db.models import Medicine
from app.db.schema import MedicineCreate, MedicineRead, MedicineUpdate
from app.medicines import crud
from app.scheduling.registry import AlarmRegistry, get_alarm_registry

router = APIRouter()


async def _get_owned_medicine(db: AsyncSession, user_id: str, medicine_id: uuid.UUID) -> Medicine:
    med = await crud.get_medicine(db, uuid.UUID(user_id), medicine_id)
    if not med:
        raise HTTPException(status_code=404, detail="Medicine not found")
    return med


# --- Routes ---
@router.post("/", response_model=MedicineRead, status_code=status.HTTP_201_CREATED)
async def create_medicine(
    payload: MedicineCreate,
    db: AsyncSession = Depends(get_db),
    current_user=Depends(get_current_user),
    registry: AlarmRegistry = Depends(get_alarm_registry),
):
    med = await crud.create_medicine(db, uuid.UUID(current_user.user_id), payload)
    await registry.refresh(current_user.user_id)
    return MedicineRead.model_validate(med)


@router.get("/", response_model=List[MedicineRead])
async def get_medicines(
    active_only: bool = False,
    db: AsyncSession = Depends(get_db),
    current_user=Depends(get_current_user),
):
    meds = await crud.list_medicines(db, uuid.UUID(current_user.user_id), active_only=active_only)
    return [MedicineRead.model_validate(med) for med in meds]


@router.get("/{medicine_id}", response_model=MedicineRead)
async def get_medicine(
    medicine_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user=Depends(get_current_user),
):
    med = await _get_owned_medicine(db, current_user.user_id, medicine_id)
    return MedicineRead.model_validate(med)


@router.patch("/{medicine_id}", response_model=MedicineRead)
async def edit_medicine(
    medicine_id: uuid.UUID,
    payload: MedicineUpdate,
    db: AsyncSession = Depends(get_db),
    current_user=Depends(get_current_user),
    registry: AlarmRegistry = Depends(get_alarm_registry),
):
    """
    Edit schedule / dosage / duration and other details.
    """
    med = await _get_owned_medicine(db, current_user.user_id, medicine_id)
    med = await crud.update_medicine(db, med, payload)
    await registry.refresh(current_user.user_id)
    return MedicineRead.model_validate(med)


@router.post("/{medicine_id}/end", response_model=MedicineRead)
async def end_medicine_dose(
    medicine_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user=Depends(get_current_user),
    registry: AlarmRegistry = Depends(get_alarm_registry),
):
    med = await _get_owned_medicine(db, current_user.user_id, medicine_id)
    med = await crud.end_medicine(db, med)
    await registry.refresh(current_user.user_id)
    return MedicineRead.model_validate(med)


@router.delete("/{medicine_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_medicine(
    medicine_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user=Depends(get_current_user),
    registry: AlarmRegistry = Depends(get_alarm_registry),
):
    med = await _get_owned_medicine(db, current_user.user_id, medicine_id)
    await crud.delete_medicine(db, med)
    await registry.refresh(current_user.user_id)
