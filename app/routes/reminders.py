from typing import List, Optional

from fastapi import APIRouter, Depends

from app.core.auth import get_current_user
from app.db.schema import NextReminderOut, ReminderOut
from app.scheduling.registry import AlarmRegistry, get_alarm_registry
from app.scheduling.schedule import (
    compute_next_dose,
    compute_todays_schedule,
    dose_datetime,
    format_countdown,
    seconds_until,
)

router = APIRouter()


@router.get("/today", response_model=List[ReminderOut])
async def get_todays_reminders(
    current_user=Depends(get_current_user),
    registry: AlarmRegistry = Depends(get_alarm_registry),
):
    """
    Today's doses in time order, cross-checked against the dose ledger.
    """
    engine = await registry.get_engine(current_user.user_id)
    now = registry.clock.now()
    ledger = engine.ledger

    reminders = []
    for dose in compute_todays_schedule(engine.medicines):
        med = dose.medicine
        if ledger.is_taken(str(med.id), dose.schedule_time):
            status = "taken"
        elif ledger.is_snoozed(str(med.id), dose.schedule_time):
            status = "snoozed"
        elif now >= dose_datetime(now.date(), dose.schedule_time):
            status = "overdue"
        else:
            status = "pending"

        reminders.append(ReminderOut(
            medicine_id=med.id,
            name=med.name,
            dosage=med.dosage,
            timing=med.timing,
            schedule_time=dose.schedule_time,
            time=dose.display_time,
            status=status,
        ))

    return reminders


@router.get("/next", response_model=Optional[NextReminderOut])
async def get_next_reminder(
    current_user=Depends(get_current_user),
    registry: AlarmRegistry = Depends(get_alarm_registry),
):
    """
    Soonest upcoming dose (wrapping to tomorrow) and a HH:MM:SS countdown.
    Returns null when no medicine has a schedule.
    """
    engine = await registry.get_engine(current_user.user_id)
    now = registry.clock.now()
    nxt = compute_next_dose(engine.medicines, now)
    if nxt is None:
        return None

    seconds_left = seconds_until(nxt, now)
    return NextReminderOut(
        medicine_id=nxt.medicine.id,
        name=nxt.medicine.name,
        dosage=nxt.medicine.dosage,
        time=nxt.time,
        seconds_left=seconds_left,
        countdown=format_countdown(seconds_left),
    )
