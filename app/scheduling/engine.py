"""Alarm state machine.

Two states: idle and ringing. The poll loop matches the wall clock against
every (medicine, time) pair and rings for the first due dose that is neither
taken nor snoozed. Callers then acknowledge, snooze/dismiss or stop.

Every transition is a synchronous swap of the immutable ``AlarmState``; the
only ``await`` (the intake recorder) happens after the swap, so a second
acknowledge arriving while the first is still writing sees an idle engine.
"""
import logging
from datetime import date, datetime
from typing import Iterable, Optional, Protocol, Set, Tuple

from pydantic import BaseModel

from app.db.schema import IntakeResult, MedicineRead
from app.scheduling.alerts import AlertSink
from app.scheduling.clock import Clock, Scheduler, TimerHandle
from app.scheduling.ledger import DoseLedger, TakenDose
from app.scheduling.schedule import InvalidScheduleTime, compute_next_dose, parse_schedule_time

logger = logging.getLogger(__name__)


class IntakeRecorderPort(Protocol):
    async def record(
        self,
        user_id: str,
        medicine_id: str,
        medicine_name: str,
        scheduled_at: str,
        status: str,
    ) -> IntakeResult: ...


class AlarmState(BaseModel):
    is_ringing: bool = False
    current_medicine: Optional[MedicineRead] = None
    current_schedule_time: Optional[str] = None
    alarm_time: Optional[datetime] = None
    dose_date: Optional[date] = None

    model_config = {
        "frozen": True,
    }


IDLE = AlarmState()


class AlarmEngine:
    def __init__(
        self,
        user_id: str,
        clock: Clock,
        scheduler: Scheduler,
        ledger: DoseLedger,
        alerts: AlertSink,
        recorder: IntakeRecorderPort,
        medicines: Iterable[MedicineRead] = (),
        poll_interval: float = 5.0,
        firing_window: int = 30,
        snooze_minutes: float = 5,
        tone_interval: float = 1.5,
    ):
        self.user_id = str(user_id)
        self.clock = clock
        self.scheduler = scheduler
        self.ledger = ledger
        self.alerts = alerts
        self.recorder = recorder
        self.poll_interval = poll_interval
        self.firing_window = firing_window
        self.snooze_minutes = snooze_minutes
        self.tone_interval = tone_interval

        self._state: AlarmState = IDLE
        self._medicines: Tuple[MedicineRead, ...] = ()
        self._poll_handle: Optional[TimerHandle] = None
        self._tone_handle: Optional[TimerHandle] = None
        # Dose instances already rung by the poll loop today
        self._fired: Set[Tuple[str, str, date]] = set()
        self._warned: Set[Tuple[str, str]] = set()
        self._day: date = clock.now().date()

        self.set_medicines(medicines)

    # ---------------- SNAPSHOTS ----------------

    @property
    def state(self) -> AlarmState:
        return self._state

    @property
    def taken_doses(self) -> Tuple[TakenDose, ...]:
        return self.ledger.taken_doses

    @property
    def medicines(self) -> Tuple[MedicineRead, ...]:
        return self._medicines

    @property
    def running(self) -> bool:
        return self._poll_handle is not None

    def set_medicines(self, medicines: Iterable[MedicineRead]) -> None:
        self._medicines = tuple(m for m in medicines if m.status != "completed")
        if self.running:
            # Re-arm so a newly added dose gets an exact wakeup
            self._poll_handle.cancel()
            self._schedule_poll()

    # ---------------- POLL LOOP ----------------

    def start(self) -> None:
        if self.running:
            return
        logger.info("Alarm engine started for user %s (%d medicines)", self.user_id, len(self._medicines))
        self._on_poll()

    def stop_polling(self) -> None:
        if self._poll_handle is not None:
            self._poll_handle.cancel()
            self._poll_handle = None
        self.stop()

    def _on_poll(self) -> None:
        self._poll_handle = None
        try:
            self.tick()
        finally:
            self._schedule_poll()

    def _schedule_poll(self) -> None:
        self._poll_handle = self.scheduler.call_later(self._next_poll_delay(), self._on_poll)

    def _next_poll_delay(self) -> float:
        now = self.clock.now()
        delay = self.poll_interval
        nxt = compute_next_dose(self._medicines, now, warn=False)
        if nxt is not None:
            delay = min(delay, (nxt.time - now).total_seconds())
        return max(delay, 0.0)

    def _parse(self, medicine: MedicineRead, time_str: str):
        try:
            return parse_schedule_time(time_str)
        except InvalidScheduleTime as e:
            pair = (str(medicine.id), str(time_str))
            if pair not in self._warned:
                self._warned.add(pair)
                logger.warning("⚠️ Skipping invalid scheduled time for %s: %s", medicine.name, e)
            return None

    def _roll_day(self, today: date) -> None:
        if today != self._day:
            self._day = today
            self._fired = {key for key in self._fired if key[2] == today}
            self.ledger.prune_to_today()

    def tick(self) -> Optional[Tuple[MedicineRead, str]]:
        """One poll: ring for the first due pair, if any, and return it."""
        now = self.clock.now()
        today = now.date()
        self._roll_day(today)

        if self._state.is_ringing:
            return None

        for medicine in self._medicines:
            for time_str in medicine.schedule or []:
                parsed = self._parse(medicine, time_str)
                if parsed is None:
                    continue
                if (now.hour, now.minute) != (parsed.hour, parsed.minute) or now.second > self.firing_window:
                    continue

                medicine_id = str(medicine.id)
                if (medicine_id, time_str, today) in self._fired:
                    continue
                if self.ledger.is_taken(medicine_id, time_str, today) or self.ledger.is_snoozed(medicine_id, time_str, today):
                    continue

                if self._ring(medicine, time_str, today, now):
                    self._fired.add((medicine_id, time_str, today))
                    return medicine, time_str
        return None

    # ---------------- RINGING ----------------

    def _ring(self, medicine: MedicineRead, schedule_time: str, dose_date: date, now: datetime) -> bool:
        if self._state.is_ringing:
            return False

        self._state = AlarmState(
            is_ringing=True,
            current_medicine=medicine,
            current_schedule_time=schedule_time,
            alarm_time=now,
            dose_date=dose_date,
        )
        logger.info("🔔 ALARM TRIGGERED for %s at %s", medicine.name, schedule_time)

        self.alerts.show_alert(
            f"Time to take {medicine.name}!",
            f"It's time to take your {medicine.dosage} dose of {medicine.name}",
            f"medicine-{medicine.id}-{schedule_time}",
        )
        self._start_tone()
        return True

    def _start_tone(self) -> None:
        self._cancel_tone()
        self.alerts.play_alert_tone()
        self._tone_handle = self.scheduler.call_later(self.tone_interval, self._repeat_tone)

    def _repeat_tone(self) -> None:
        self._tone_handle = None
        if not self._state.is_ringing:
            return
        self.alerts.play_alert_tone()
        self._tone_handle = self.scheduler.call_later(self.tone_interval, self._repeat_tone)

    def _cancel_tone(self) -> None:
        if self._tone_handle is not None:
            self._tone_handle.cancel()
            self._tone_handle = None

    # ---------------- OPERATIONS ----------------

    def stop(self) -> AlarmState:
        """Silence and go idle. Returns the state that was replaced."""
        previous = self._state
        self._cancel_tone()
        self._state = IDLE
        if previous.is_ringing:
            logger.info("Alarm stopped for %s", previous.current_medicine.name)
        return previous

    def _take_ringing(self) -> Optional[AlarmState]:
        if not self._state.is_ringing:
            return None
        return self.stop()

    async def acknowledge(self) -> bool:
        """Mark the ringing dose as taken. No-op (False) when idle."""
        previous = self._take_ringing()
        if previous is None:
            logger.debug("acknowledge() ignored: no alarm ringing")
            return False

        medicine = previous.current_medicine
        schedule_time = previous.current_schedule_time
        medicine_id = str(medicine.id)

        # Local first: the dose stays taken even if the durable write fails
        self.ledger.record_taken(medicine_id, schedule_time, previous.dose_date)
        self.ledger.clear_snooze(medicine_id, schedule_time, previous.dose_date)

        try:
            result = await self.recorder.record(
                self.user_id, medicine_id, medicine.name, schedule_time, "taken"
            )
        except Exception:
            logger.exception("❌ Failed to record intake for %s at %s", medicine.name, schedule_time)
            return True

        if result.success:
            logger.info("✅ Dose of %s at %s marked as taken", medicine.name, schedule_time)
        else:
            logger.warning("Intake for %s at %s kept locally only: %s", medicine.name, schedule_time, result.error)
        return True

    def snooze(self) -> Optional[datetime]:
        """Defer the ringing dose. Returns the wake time, or None when idle."""
        previous = self._take_ringing()
        if previous is None:
            logger.debug("snooze() ignored: no alarm ringing")
            return None

        medicine = previous.current_medicine
        schedule_time = previous.current_schedule_time
        wake = self.ledger.snooze(str(medicine.id), schedule_time, self.snooze_minutes, previous.dose_date)
        delay = (wake - self.clock.now()).total_seconds()
        self.scheduler.call_later(delay, self._snooze_recheck, medicine, schedule_time, previous.dose_date, wake)
        logger.info("Dose of %s at %s snoozed until %s", medicine.name, schedule_time, wake)
        return wake

    def dismiss(self) -> Optional[datetime]:
        # No way to silence for good without taking the dose: dismissing defers
        return self.snooze()

    def _snooze_recheck(self, medicine: MedicineRead, schedule_time: str, dose_date: date, wake: datetime) -> None:
        medicine_id = str(medicine.id)
        if self.ledger.is_taken(medicine_id, schedule_time, dose_date):
            return
        current_wake = self.ledger.snoozed_until(medicine_id, schedule_time, dose_date)
        if current_wake is not None and current_wake > wake:
            # Re-snoozed since; that snooze owns its own re-check
            return

        medicine = next((m for m in self._medicines if str(m.id) == medicine_id), None)
        if medicine is None or schedule_time not in (medicine.schedule or []):
            logger.info("Snoozed dose %s at %s no longer scheduled, dropping", medicine_id, schedule_time)
            self.ledger.clear_snooze(medicine_id, schedule_time, dose_date)
            return

        if self._state.is_ringing:
            self.scheduler.call_later(self.poll_interval, self._snooze_recheck, medicine, schedule_time, dose_date, wake)
            return

        self.ledger.clear_snooze(medicine_id, schedule_time, dose_date)
        logger.info("🔔 SNOOZE ALARM TRIGGERED for %s", medicine.name)
        self._ring(medicine, schedule_time, dose_date, self.clock.now())
