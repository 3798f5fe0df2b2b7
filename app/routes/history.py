import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import get_current_user
from app.db.database import get_db
from app.db.schema import IntakeRead, MissedDoseCreate, UserStatsRead
from app.medicines import crud
from app.scheduling.registry import AlarmRegistry, get_alarm_registry

router = APIRouter()


@router.get("/", response_model=List[IntakeRead])
async def get_history(
    limit: Optional[int] = None,
    current_user=Depends(get_current_user),
    registry: AlarmRegistry = Depends(get_alarm_registry),
):
    """
    Intake history, newest first.
    """
    records = await registry.recorder.list_history(current_user.user_id, limit=limit)
    return [IntakeRead.model_validate(r) for r in records]


@router.post("/missed")
async def log_missed_dose(
    payload: MissedDoseCreate,
    db: AsyncSession = Depends(get_db),
    current_user=Depends(get_current_user),
    registry: AlarmRegistry = Depends(get_alarm_registry),
):
    med = await crud.get_medicine(db, uuid.UUID(current_user.user_id), payload.medicine_id)
    if not med:
        raise HTTPException(status_code=404, detail="Medicine not found")

    result = await registry.recorder.record(
        current_user.user_id, med.id, med.name, payload.scheduled_at, "missed"
    )
    if not result.success:
        raise HTTPException(status_code=500, detail=result.error)
    return {"success": True, "status": "missed"}


@router.get("/stats", response_model=UserStatsRead)
async def get_user_stats(
    current_user=Depends(get_current_user),
    registry: AlarmRegistry = Depends(get_alarm_registry),
):
    return await registry.recorder.get_stats(current_user.user_id)
