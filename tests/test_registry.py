import uuid
from datetime import datetime

import pytest

from app.db.schema import MedicineCreate
from app.medicines import crud
from app.scheduling.ledger import TAKEN_DOSES_KEY

OWNER = uuid.uuid4()


async def add_medicine(session_factory, user_id=OWNER, **overrides):
    data = {"name": "Metformin", "dosage": "1-0-1", "schedule": ["09:00", "21:00"], **overrides}
    async with session_factory() as db:
        return await crud.create_medicine(db, user_id, MedicineCreate(**data))


@pytest.mark.anyio
async def test_start_all_boots_engines_for_users_with_active_medicines(registry, session_factory, scheduler):
    await add_medicine(session_factory)
    other = uuid.uuid4()
    ended = await add_medicine(session_factory, user_id=other, name="Amoxicillin")
    async with session_factory() as db:
        await crud.end_medicine(db, await crud.get_medicine(db, other, ended.id))

    started = await registry.start_all()

    assert started == 1
    assert list(registry.engines) == [str(OWNER)]

    scheduler.run_until(datetime(2026, 10, 19, 9, 0, 5))
    assert registry.engines[str(OWNER)].state.is_ringing


@pytest.mark.anyio
async def test_last_alert_follows_the_ringing_dose(registry, session_factory, scheduler):
    med = await add_medicine(session_factory)
    await registry.get_engine(str(OWNER))

    assert registry.last_alert(str(OWNER)) is None

    scheduler.run_until(datetime(2026, 10, 19, 9, 0, 5))
    alert = registry.last_alert(str(OWNER))

    assert alert.title == "Time to take Metformin!"
    assert alert.body == "It's time to take your 1-0-1 dose of Metformin"
    assert alert.tag == f"medicine-{med.id}-09:00"
    assert registry.last_alert(str(uuid.uuid4())) is None


@pytest.mark.anyio
async def test_refresh_starts_an_engine_for_a_new_user(registry, session_factory):
    await add_medicine(session_factory)
    assert registry.engines == {}

    await registry.refresh(str(OWNER))

    engine = registry.engines[str(OWNER)]
    assert engine.running
    assert [m.name for m in engine.medicines] == ["Metformin"]


@pytest.mark.anyio
async def test_drop_stops_engine_and_clears_local_ledger(registry, session_factory, scheduler):
    await add_medicine(session_factory)
    engine = await registry.get_engine(str(OWNER))
    scheduler.run_until(datetime(2026, 10, 19, 9, 0, 5))
    await engine.acknowledge()
    key = f"{TAKEN_DOSES_KEY}:{OWNER}"
    assert registry.store.get(key) is not None

    registry.drop(str(OWNER))

    assert str(OWNER) not in registry.engines
    assert not engine.running
    assert registry.store.get(key) is None
    assert registry.last_alert(str(OWNER)) is None
