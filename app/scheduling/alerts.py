import logging
from datetime import datetime
from typing import Callable, Optional, Protocol

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class AlertSink(Protocol):
    def show_alert(self, title: str, body: str, tag: str) -> None: ...

    def play_alert_tone(self) -> None: ...


class Alert(BaseModel):
    title: str
    body: str
    tag: str
    shown_at: datetime


class LoggingAlertSink:
    """Default sink: logs alerts and keeps the latest one for polling clients.

    Tone repetition is driven by the engine, so ``play_alert_tone`` is called
    once per beep; only the first beep of a run is logged at INFO.
    """

    def __init__(self, now: Callable[[], datetime] = datetime.now):
        self._now = now
        self.last_alert: Optional[Alert] = None
        self.tone_count = 0

    def show_alert(self, title: str, body: str, tag: str) -> None:
        self.last_alert = Alert(title=title, body=body, tag=tag, shown_at=self._now())
        self.tone_count = 0
        logger.info("🔔 %s - %s [%s]", title, body, tag)

    def play_alert_tone(self) -> None:
        self.tone_count += 1
        if self.tone_count == 1:
            logger.info("Alarm tone started")
        else:
            logger.debug("Alarm tone beep #%d", self.tone_count)
