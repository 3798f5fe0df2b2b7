import json
import logging
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ValidationError

from app.scheduling.clock import Clock
from app.scheduling.storage import KeyValueStore

logger = logging.getLogger(__name__)

TAKEN_DOSES_KEY = "medminder-taken-doses"

DoseKey = Tuple[str, str, date]


class TakenDose(BaseModel):
    medicine_id: str
    schedule_time: str
    date: date

    model_config = {
        "frozen": True,
    }


class DoseLedger:
    """Which of today's doses were taken, and which are snoozed.

    Taken records live in the key-value store (read once here, written on
    every change). Snooze entries are in-memory only and die with the process.
    """

    def __init__(self, store: KeyValueStore, clock: Clock, key: str = TAKEN_DOSES_KEY):
        self.store = store
        self.clock = clock
        self.key = key
        self._taken: List[TakenDose] = self._load()
        self._snoozed: Dict[DoseKey, datetime] = {}
        self.prune_to_today()

    def _today(self) -> date:
        return self.clock.now().date()

    def _load(self) -> List[TakenDose]:
        raw = self.store.get(self.key)
        if not raw:
            return []
        try:
            return [TakenDose(**item) for item in json.loads(raw)]
        except (json.JSONDecodeError, TypeError, ValidationError) as e:
            logger.warning("Discarding unreadable dose ledger under %r: %s", self.key, e)
            return []

    def _persist(self) -> None:
        payload = [dose.model_dump(mode="json") for dose in self._taken]
        try:
            self.store.set(self.key, json.dumps(payload))
        except OSError:
            # In-memory state stays authoritative until the next successful write
            logger.exception("Failed to persist dose ledger under %r", self.key)

    @property
    def taken_doses(self) -> Tuple[TakenDose, ...]:
        """Records dated today. A late acknowledge of yesterday's dose is
        kept internally for ``is_taken`` but not listed."""
        today = self._today()
        return tuple(dose for dose in self._taken if dose.date == today)

    # ---------------- TAKEN ----------------

    def is_taken(self, medicine_id: str, schedule_time: str, on: Optional[date] = None) -> bool:
        dose = TakenDose(medicine_id=str(medicine_id), schedule_time=schedule_time, date=on or self._today())
        return dose in self._taken

    def record_taken(self, medicine_id: str, schedule_time: str, on: Optional[date] = None) -> TakenDose:
        dose = TakenDose(medicine_id=str(medicine_id), schedule_time=schedule_time, date=on or self._today())
        if dose not in self._taken:
            self._taken.append(dose)
            self._persist()
        return dose

    def prune_to_today(self) -> None:
        today = self._today()
        kept = [dose for dose in self._taken if dose.date == today]
        if len(kept) != len(self._taken):
            logger.info("Pruned %d stale taken-dose records", len(self._taken) - len(kept))
            self._taken = kept
            self._persist()

        now = self.clock.now()
        self._snoozed = {k: wake for k, wake in self._snoozed.items() if wake > now}

    # ---------------- SNOOZE ----------------

    def snooze(
        self,
        medicine_id: str,
        schedule_time: str,
        duration_minutes: float = 5,
        on: Optional[date] = None,
    ) -> datetime:
        wake = self.clock.now() + timedelta(minutes=duration_minutes)
        self._snoozed[(str(medicine_id), schedule_time, on or self._today())] = wake
        return wake

    def snoozed_until(self, medicine_id: str, schedule_time: str, on: Optional[date] = None) -> Optional[datetime]:
        return self._snoozed.get((str(medicine_id), schedule_time, on or self._today()))

    def is_snoozed(self, medicine_id: str, schedule_time: str, on: Optional[date] = None) -> bool:
        wake = self.snoozed_until(medicine_id, schedule_time, on)
        return wake is not None and self.clock.now() < wake

    def clear_snooze(self, medicine_id: str, schedule_time: str, on: Optional[date] = None) -> None:
        self._snoozed.pop((str(medicine_id), schedule_time, on or self._today()), None)
