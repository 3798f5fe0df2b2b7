import asyncio
import logging
import uuid
from typing import Dict, List, Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from app.core.config import Settings, settings
from app.db.database import AsyncSessionLocal
from app.db.schema import MedicineRead
from app.intake.recorder import IntakeRecorder
from app.medicines.crud import list_medicines, list_users_with_active_medicines
from app.scheduling.alerts import Alert, LoggingAlertSink
from app.scheduling.clock import AsyncioScheduler, Clock, Scheduler, SystemClock
from app.scheduling.engine import AlarmEngine
from app.scheduling.ledger import TAKEN_DOSES_KEY, DoseLedger
from app.scheduling.storage import JsonFileStore, KeyValueStore

logger = logging.getLogger(__name__)


class AlarmRegistry:
    """One running alarm engine per signed-in user.

    Engines are created on first use and fed the user's active medicines;
    medicine routes call ``refresh`` after every mutation.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        config: Settings = settings,
        clock: Optional[Clock] = None,
        scheduler: Optional[Scheduler] = None,
        store: Optional[KeyValueStore] = None,
        recorder: Optional[IntakeRecorder] = None,
    ):
        self.session_factory = session_factory
        self.config = config
        self.clock = clock or SystemClock(config.timezone)
        self.scheduler = scheduler or AsyncioScheduler()
        self._store = store
        self.recorder = recorder or IntakeRecorder(session_factory, self.clock, config.reward_points)
        self.engines: Dict[str, AlarmEngine] = {}
        self.alerts: Dict[str, LoggingAlertSink] = {}
        self._lock = asyncio.Lock()

    @property
    def store(self) -> KeyValueStore:
        if self._store is None:
            self._store = JsonFileStore(self.config.ledger_path)
        return self._store

    async def load_medicines(self, user_id: str) -> List[MedicineRead]:
        async with self.session_factory() as db:
            meds = await list_medicines(db, uuid.UUID(str(user_id)), active_only=True)
            return [MedicineRead.model_validate(m) for m in meds]

    async def get_engine(self, user_id: str) -> AlarmEngine:
        user_id = str(user_id)
        engine = self.engines.get(user_id)
        if engine is not None:
            return engine

        async with self._lock:
            engine = self.engines.get(user_id)
            if engine is not None:
                return engine

            medicines = await self.load_medicines(user_id)
            ledger = DoseLedger(self.store, self.clock, key=f"{TAKEN_DOSES_KEY}:{user_id}")
            alerts = LoggingAlertSink(self.clock.now)
            engine = AlarmEngine(
                user_id,
                clock=self.clock,
                scheduler=self.scheduler,
                ledger=ledger,
                alerts=alerts,
                recorder=self.recorder,
                medicines=medicines,
                poll_interval=self.config.poll_interval_seconds,
                firing_window=self.config.firing_window_seconds,
                snooze_minutes=self.config.snooze_minutes,
                tone_interval=self.config.tone_interval_seconds,
            )
            engine.start()
            self.engines[user_id] = engine
            self.alerts[user_id] = alerts
            return engine

    async def start_all(self) -> int:
        """Start an engine for every user with an active medicine."""
        async with self.session_factory() as db:
            user_ids = await list_users_with_active_medicines(db)
        for user_id in user_ids:
            await self.get_engine(str(user_id))
        logger.info("Started alarm engines for %d users", len(user_ids))
        return len(user_ids)

    def last_alert(self, user_id: str) -> Optional[Alert]:
        sink = self.alerts.get(str(user_id))
        return sink.last_alert if sink is not None else None

    def drop(self, user_id: str) -> None:
        """Stop and forget a user's engine and local ledger."""
        user_id = str(user_id)
        engine = self.engines.pop(user_id, None)
        self.alerts.pop(user_id, None)
        if engine is not None:
            engine.stop_polling()
            logger.info("Alarm engine dropped for user %s", user_id)
        self.store.delete(f"{TAKEN_DOSES_KEY}:{user_id}")

    async def refresh(self, user_id: str) -> None:
        engine = self.engines.get(str(user_id))
        if engine is None:
            # First medicine of a user the process has not seen yet
            await self.get_engine(user_id)
            return
        engine.set_medicines(await self.load_medicines(user_id))

    def shutdown(self) -> None:
        for user_id, engine in self.engines.items():
            engine.stop_polling()
            logger.info("Alarm engine stopped for user %s", user_id)
        self.engines.clear()
        self.alerts.clear()


alarm_registry = AlarmRegistry(AsyncSessionLocal)


def get_alarm_registry() -> AlarmRegistry:
    return alarm_registry
