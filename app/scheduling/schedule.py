"""Today's schedule and next-dose lookup.

Pure functions over a list of medicines. Schedule entries are naive local
"HH:MM" strings; entries that fail to parse are skipped with a warning so one
bad record never hides the rest of the schedule.
"""
import logging
from datetime import datetime, date, time, timedelta
from typing import Iterator, List, Optional, Sequence, Tuple

from pydantic import BaseModel

from app.db.schema import MedicineRead, SCHEDULE_TIME_PATTERN

logger = logging.getLogger(__name__)


class InvalidScheduleTime(ValueError):
    pass


class ScheduledDose(BaseModel):
    medicine: MedicineRead
    schedule_time: str  # "HH:MM"
    display_time: str  # "hh:mm AM"
    minute_of_day: int


class NextDose(BaseModel):
    time: datetime
    medicine: MedicineRead
    schedule_time: str


def parse_schedule_time(value: str) -> time:
    """Parse a strict 24-hour "HH:MM" string."""
    match = SCHEDULE_TIME_PATTERN.match(value) if isinstance(value, str) else None
    if not match:
        raise InvalidScheduleTime(f"Unrecognized schedule time: {value!r}")
    return time(int(match.group(1)), int(match.group(2)))


def format_12h(value: time) -> str:
    return value.strftime("%I:%M %p")


def minute_of_day(value: time) -> int:
    return value.hour * 60 + value.minute


def iter_schedule(
    medicines: Sequence[MedicineRead], warn: bool = True
) -> Iterator[Tuple[MedicineRead, str, time]]:
    """Yield (medicine, raw time string, parsed time) in input order."""
    for med in medicines:
        for time_str in med.schedule or []:
            try:
                parsed = parse_schedule_time(time_str)
            except InvalidScheduleTime as e:
                if warn:
                    logger.warning("⚠️ Skipping invalid scheduled time for medicine %s: %s", med.id, e)
                continue
            yield med, time_str, parsed


def compute_todays_schedule(medicines: Sequence[MedicineRead]) -> List[ScheduledDose]:
    doses = [
        ScheduledDose(
            medicine=med,
            schedule_time=time_str,
            display_time=format_12h(parsed),
            minute_of_day=minute_of_day(parsed),
        )
        for med, time_str, parsed in iter_schedule(medicines)
    ]
    # sorted() is stable: equal minutes keep medicine input order
    return sorted(doses, key=lambda d: d.minute_of_day)


def compute_next_dose(
    medicines: Sequence[MedicineRead], now: datetime, warn: bool = True
) -> Optional[NextDose]:
    """Soonest dose strictly after ``now``, wrapping to tomorrow if today is done."""
    entries = list(iter_schedule(medicines, warn))
    today = now.date()

    best: Optional[NextDose] = None
    for med, time_str, parsed in entries:
        dose_time = datetime.combine(today, parsed)
        if dose_time > now and (best is None or dose_time < best.time):
            best = NextDose(time=dose_time, medicine=med, schedule_time=time_str)

    if best is None:
        tomorrow = today + timedelta(days=1)
        for med, time_str, parsed in entries:
            dose_time = datetime.combine(tomorrow, parsed)
            if best is None or dose_time < best.time:
                best = NextDose(time=dose_time, medicine=med, schedule_time=time_str)

    return best


def seconds_until(next_dose: NextDose, now: datetime) -> int:
    return max(0, int((next_dose.time - now).total_seconds()))


def format_countdown(seconds: int) -> str:
    hours, rest = divmod(max(seconds, 0), 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def dose_datetime(on: date, schedule_time: str) -> datetime:
    return datetime.combine(on, parse_schedule_time(schedule_time))
