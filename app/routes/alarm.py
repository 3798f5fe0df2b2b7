from typing import List

from fastapi import APIRouter, Depends

from app.core.auth import get_current_user
from app.db.schema import AlarmActionOut, AlarmStateOut, AlertOut, TakenDoseOut
from app.scheduling.engine import AlarmEngine
from app.scheduling.registry import AlarmRegistry, get_alarm_registry

router = APIRouter()


async def get_user_engine(
    current_user=Depends(get_current_user),
    registry: AlarmRegistry = Depends(get_alarm_registry),
) -> AlarmEngine:
    return await registry.get_engine(current_user.user_id)


def _state_out(engine: AlarmEngine, registry: AlarmRegistry) -> AlarmStateOut:
    state = AlarmStateOut(**engine.state.model_dump())
    alert = registry.last_alert(engine.user_id)
    if state.is_ringing and alert is not None:
        state.alert = AlertOut(**alert.model_dump())
    return state


@router.get("/", response_model=AlarmStateOut)
async def get_alarm_state(
    engine: AlarmEngine = Depends(get_user_engine),
    registry: AlarmRegistry = Depends(get_alarm_registry),
):
    """
    Read-only snapshot for clients polling for a ringing alarm.
    """
    return _state_out(engine, registry)


# ---------------- ACKNOWLEDGE ----------------
@router.post("/acknowledge", response_model=AlarmActionOut)
async def acknowledge_alarm(
    engine: AlarmEngine = Depends(get_user_engine),
    registry: AlarmRegistry = Depends(get_alarm_registry),
):
    """
    Mark the ringing dose as taken. ``success`` is false when nothing was ringing.
    """
    success = await engine.acknowledge()
    return AlarmActionOut(success=success, state=_state_out(engine, registry))


# ---------------- SNOOZE / DISMISS ----------------
@router.post("/snooze", response_model=AlarmActionOut)
async def snooze_alarm(
    engine: AlarmEngine = Depends(get_user_engine),
    registry: AlarmRegistry = Depends(get_alarm_registry),
):
    wake = engine.snooze()
    return AlarmActionOut(success=wake is not None, state=_state_out(engine, registry), snoozed_until=wake)


@router.post("/dismiss", response_model=AlarmActionOut)
async def dismiss_alarm(
    engine: AlarmEngine = Depends(get_user_engine),
    registry: AlarmRegistry = Depends(get_alarm_registry),
):
    """
    Dismissing defers the dose like a snooze; there is no "skip for today".
    """
    wake = engine.dismiss()
    return AlarmActionOut(success=wake is not None, state=_state_out(engine, registry), snoozed_until=wake)


@router.post("/stop", response_model=AlarmActionOut)
async def stop_alarm(
    engine: AlarmEngine = Depends(get_user_engine),
    registry: AlarmRegistry = Depends(get_alarm_registry),
):
    previous = engine.stop()
    return AlarmActionOut(success=previous.is_ringing, state=_state_out(engine, registry))


@router.get("/taken-doses", response_model=List[TakenDoseOut])
async def get_taken_doses(engine: AlarmEngine = Depends(get_user_engine)):
    return [TakenDoseOut(**dose.model_dump()) for dose in engine.taken_doses]
