import logging
from datetime import date, datetime

import pytest

from app.db.schema import IntakeResult
from app.scheduling.engine import AlarmEngine
from app.scheduling.ledger import DoseLedger

from fakes import FailingStore, FakeRecorder, USER_ID, make_medicine


def at(hour, minute, second=0, day=19):
    return datetime(2026, 10, day, hour, minute, second)


@pytest.fixture
def metformin():
    return make_medicine("Metformin", ["09:00", "21:00"])


@pytest.fixture
def make_engine(clock, scheduler, ledger, alerts, recorder):
    def _make(medicines, **kwargs):
        return AlarmEngine(
            USER_ID,
            clock=clock,
            scheduler=scheduler,
            ledger=ledger,
            alerts=alerts,
            recorder=kwargs.pop("recorder", recorder),
            medicines=medicines,
            **kwargs,
        )
    return _make


def test_starts_idle(make_engine, metformin):
    engine = make_engine([metformin])

    assert not engine.state.is_ringing
    assert engine.state.current_medicine is None


def test_poll_in_firing_window_rings(make_engine, metformin, clock, alerts):
    engine = make_engine([metformin])

    clock.set(at(9, 0, 5))
    fired = engine.tick()

    assert fired == (metformin, "09:00")
    state = engine.state
    assert state.is_ringing
    assert state.current_medicine.id == metformin.id
    assert state.current_schedule_time == "09:00"
    assert state.alarm_time == at(9, 0, 5)
    assert state.dose_date == date(2026, 10, 19)
    assert alerts.alerts == [(
        "Time to take Metformin!",
        "It's time to take your 1-0-1 dose of Metformin",
        f"medicine-{metformin.id}-09:00",
    )]
    assert alerts.tones == 1


@pytest.mark.parametrize("now", [at(8, 59, 59), at(9, 0, 31), at(9, 1, 0)])
def test_poll_outside_firing_window_stays_idle(make_engine, metformin, clock, now):
    engine = make_engine([metformin])

    clock.set(now)

    assert engine.tick() is None
    assert not engine.state.is_ringing


def test_firing_window_edge_is_inclusive(make_engine, metformin, clock):
    engine = make_engine([metformin])

    clock.set(at(9, 0, 30))

    assert engine.tick() is not None


@pytest.mark.anyio
async def test_acknowledge_records_and_prevents_refire(make_engine, metformin, clock, recorder):
    engine = make_engine([metformin])
    clock.set(at(9, 0, 5))
    engine.tick()

    assert await engine.acknowledge() is True

    assert not engine.state.is_ringing
    assert engine.ledger.is_taken(str(metformin.id), "09:00")
    assert recorder.calls == [(str(USER_ID), str(metformin.id), "Metformin", "09:00", "taken")]

    clock.set(at(9, 0, 20))
    assert engine.tick() is None
    assert not engine.state.is_ringing


@pytest.mark.anyio
async def test_acknowledge_twice_is_idempotent(make_engine, metformin, clock, recorder):
    engine = make_engine([metformin])
    clock.set(at(9, 0, 5))
    engine.tick()

    assert await engine.acknowledge() is True
    assert await engine.acknowledge() is False

    assert len(recorder.calls) == 1
    assert len(engine.taken_doses) == 1


@pytest.mark.anyio
async def test_acknowledge_when_idle_is_a_noop(make_engine, metformin, recorder):
    engine = make_engine([metformin])

    assert await engine.acknowledge() is False
    assert engine.snooze() is None
    assert engine.dismiss() is None
    assert recorder.calls == []


@pytest.mark.anyio
async def test_recorder_exception_still_marks_taken(make_engine, metformin, clock, caplog):
    engine = make_engine([metformin], recorder=FakeRecorder(error=RuntimeError("db down")))
    clock.set(at(9, 0, 5))
    engine.tick()

    with caplog.at_level(logging.ERROR):
        assert await engine.acknowledge() is True

    assert engine.ledger.is_taken(str(metformin.id), "09:00")
    assert not engine.state.is_ringing
    assert "db down" in caplog.text


@pytest.mark.anyio
async def test_recorder_failure_result_still_marks_taken(make_engine, metformin, clock, caplog):
    failing = FakeRecorder(result=IntakeResult(success=False, error="Failed to update intake."))
    engine = make_engine([metformin], recorder=failing)
    clock.set(at(9, 0, 5))
    engine.tick()

    with caplog.at_level(logging.WARNING):
        await engine.acknowledge()

    assert engine.ledger.is_taken(str(metformin.id), "09:00")
    assert "kept locally only" in caplog.text


def test_snooze_rearms_after_duration(make_engine, metformin, clock, scheduler):
    engine = make_engine([metformin])
    clock.set(at(9, 0, 10))
    engine.tick()

    wake = engine.snooze()

    assert wake == at(9, 5, 10)
    assert not engine.state.is_ringing

    scheduler.run_until(at(9, 3))
    assert engine.ledger.is_snoozed(str(metformin.id), "09:00")
    assert not engine.state.is_ringing

    scheduler.run_until(at(9, 5, 9))
    assert not engine.state.is_ringing

    scheduler.run_until(at(9, 5, 10))
    assert engine.state.is_ringing
    assert engine.state.current_schedule_time == "09:00"
    assert engine.state.alarm_time == at(9, 5, 10)
    assert not engine.ledger.is_snoozed(str(metformin.id), "09:00")


def test_dismiss_behaves_like_snooze(make_engine, metformin, clock, scheduler):
    engine = make_engine([metformin])
    clock.set(at(9, 0, 10))
    engine.tick()

    assert engine.dismiss() == at(9, 5, 10)

    scheduler.run_until(at(9, 5, 10))
    assert engine.state.is_ringing


def test_snooze_recheck_skips_dose_taken_meanwhile(make_engine, metformin, clock, scheduler):
    engine = make_engine([metformin])
    clock.set(at(9, 0, 10))
    engine.tick()
    engine.snooze()

    engine.ledger.record_taken(str(metformin.id), "09:00")
    scheduler.run_until(at(9, 6))

    assert not engine.state.is_ringing


def test_resnooze_supersedes_earlier_recheck(make_engine, metformin, clock, scheduler):
    engine = make_engine([metformin])
    clock.set(at(9, 0, 10))
    engine.tick()
    engine.snooze()

    scheduler.run_until(at(9, 5, 10))
    assert engine.state.is_ringing
    assert engine.snooze() == at(9, 10, 10)

    scheduler.run_until(at(9, 10, 9))
    assert not engine.state.is_ringing
    scheduler.run_until(at(9, 10, 10))
    assert engine.state.is_ringing


def test_unrelated_stop_does_not_cancel_snooze_recheck(make_engine, metformin, clock, scheduler):
    engine = make_engine([metformin])
    clock.set(at(9, 0, 10))
    engine.tick()
    engine.snooze()

    engine.stop()
    scheduler.run_until(at(9, 5, 10))

    assert engine.state.is_ringing


def test_snooze_recheck_waits_for_other_alarm(make_engine, clock, scheduler):
    a = make_medicine("A", ["09:00"])
    b = make_medicine("B", ["09:05"])
    engine = make_engine([a, b])

    clock.set(at(9, 0, 0))
    engine.tick()
    engine.snooze()  # A re-checks at 09:05:00

    clock.set(at(9, 5, 0))
    engine.tick()  # B rings first at the same instant
    assert engine.state.current_medicine.name == "B"

    scheduler.run_until(at(9, 5, 0))
    assert engine.state.current_medicine.name == "B"

    engine.stop()
    scheduler.advance(engine.poll_interval)
    assert engine.state.is_ringing
    assert engine.state.current_medicine.name == "A"


def test_only_one_alarm_rings_per_tick(make_engine, clock):
    first = make_medicine("First", ["09:00"])
    second = make_medicine("Second", ["09:00"])
    engine = make_engine([first, second])

    clock.set(at(9, 0, 1))
    engine.tick()
    engine.tick()

    assert engine.state.current_medicine.name == "First"


@pytest.mark.anyio
async def test_dropped_simultaneous_dose_fires_once_first_is_cleared(make_engine, clock):
    first = make_medicine("First", ["09:00"])
    second = make_medicine("Second", ["09:00"])
    engine = make_engine([first, second])

    clock.set(at(9, 0, 1))
    engine.tick()
    await engine.acknowledge()

    clock.set(at(9, 0, 6))
    engine.tick()

    assert engine.state.current_medicine.name == "Second"


def test_stopped_alarm_does_not_refire_in_same_window(make_engine, metformin, clock):
    engine = make_engine([metformin])
    clock.set(at(9, 0, 1))
    engine.tick()

    engine.stop()
    clock.set(at(9, 0, 6))

    assert engine.tick() is None
    assert not engine.state.is_ringing


def test_stop_is_idempotent_and_cancels_tone(make_engine, metformin, clock, scheduler, alerts):
    engine = make_engine([metformin], tone_interval=1.5)
    clock.set(at(9, 0, 0))
    engine.tick()

    scheduler.advance(3.0)
    assert alerts.tones == 3

    engine.stop()
    engine.stop()
    scheduler.advance(10)

    assert alerts.tones == 3
    assert not engine.state.is_ringing


def test_malformed_time_skipped_without_breaking_poll(make_engine, clock, caplog):
    broken = make_medicine("Broken", ["9am", "25:00"])
    good = make_medicine("Good", ["09:00"])
    engine = make_engine([broken, good])

    clock.set(at(9, 0, 2))
    with caplog.at_level(logging.WARNING):
        engine.tick()

    assert engine.state.current_medicine.name == "Good"
    assert "9am" in caplog.text


def test_completed_medicines_are_ignored(make_engine, clock):
    done = make_medicine("Done", ["09:00"], status="completed")
    engine = make_engine([done])

    clock.set(at(9, 0, 2))

    assert engine.medicines == ()
    assert engine.tick() is None


def test_poll_loop_fires_at_start_of_minute(make_engine, metformin, clock, scheduler):
    engine = make_engine([metformin])
    clock.set(at(8, 59, 58))

    engine.start()
    assert engine.running
    scheduler.run_until(at(9, 0, 1))

    assert engine.state.is_ringing
    assert engine.state.alarm_time == at(9, 0, 0)


def test_poll_loop_stop_polling(make_engine, metformin, clock, scheduler):
    engine = make_engine([metformin])
    clock.set(at(8, 50))
    engine.start()

    engine.stop_polling()
    scheduler.run_until(at(9, 0, 10))

    assert not engine.running
    assert not engine.state.is_ringing


def test_set_medicines_picks_up_new_dose(make_engine, clock, scheduler):
    engine = make_engine([])
    clock.set(at(9, 59, 0))
    engine.start()

    engine.set_medicines([make_medicine("Late addition", ["10:00"])])
    scheduler.run_until(at(10, 0, 0))

    assert engine.state.is_ringing
    assert engine.state.alarm_time == at(10, 0, 0)


@pytest.mark.anyio
async def test_day_rollover_prunes_ledger_and_rings_again(make_engine, metformin, clock):
    engine = make_engine([metformin])
    clock.set(at(9, 0, 1))
    engine.tick()
    await engine.acknowledge()

    clock.set(at(9, 0, 1, day=20))
    engine.tick()

    assert engine.state.is_ringing
    assert engine.taken_doses == ()


@pytest.mark.anyio
async def test_ledger_write_failure_still_records_intake(clock, scheduler, alerts, recorder, metformin, caplog):
    engine = AlarmEngine(
        USER_ID,
        clock=clock,
        scheduler=scheduler,
        ledger=DoseLedger(FailingStore(), clock),
        alerts=alerts,
        recorder=recorder,
        medicines=[metformin],
    )
    clock.set(at(9, 0, 5))
    engine.tick()

    with caplog.at_level(logging.ERROR):
        assert await engine.acknowledge() is True

    assert recorder.calls == [(str(USER_ID), str(metformin.id), "Metformin", "09:00", "taken")]
    assert engine.ledger.is_taken(str(metformin.id), "09:00")
    assert "Failed to persist dose ledger" in caplog.text


@pytest.mark.anyio
async def test_dose_snoozed_past_midnight_keeps_its_day(make_engine, clock, scheduler, recorder):
    late = make_medicine("Melatonin", ["23:58"])
    engine = make_engine([late])
    clock.set(at(23, 58, 5))
    engine.tick()

    wake = engine.snooze()
    assert wake == at(0, 3, 5, day=20)
    scheduler.run_until(wake)

    assert engine.state.is_ringing
    assert engine.state.dose_date == date(2026, 10, 19)

    await engine.acknowledge()

    assert recorder.calls[-1][3] == "23:58"
    assert engine.ledger.is_taken(str(late.id), "23:58", on=date(2026, 10, 19))
    assert not engine.ledger.is_taken(str(late.id), "23:58")
    assert engine.taken_doses == ()
