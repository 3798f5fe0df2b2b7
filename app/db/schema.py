import re
from datetime import datetime, date
from typing import List, Literal, Optional
from pydantic import BaseModel, EmailStr, Field, UUID4, field_validator

SCHEDULE_TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")
DEFAULT_PHOTO_URL = "https://picsum.photos/seed/med-placeholder/200/200"

Timing = Literal["before-food", "after-food", "any"]
IntakeStatus = Literal["taken", "missed"]


def _clean_schedule(times: List[str]) -> List[str]:
    """Strip, validate HH:MM and drop duplicates, keeping first-seen order."""
    cleaned: List[str] = []
    for t in times:
        t = t.strip()
        if not SCHEDULE_TIME_PATTERN.match(t):
            raise ValueError(f"Schedule time '{t}' must be HH:MM (24-hour)")
        if t not in cleaned:
            cleaned.append(t)
    return cleaned


# ---------------------------------------------------------------------------
# USER SCHEMAS
# ---------------------------------------------------------------------------

class UserBase(BaseModel):
    email: EmailStr
    name: Optional[str] = None
    is_active: bool = True


class UserRead(UserBase):
    id: UUID4
    created_at: datetime
    updated_at: datetime

    model_config = {
        "from_attributes": True
    }


class UserUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None


# ---------------------------------------------------------------------------
# MEDICINE
# ---------------------------------------------------------------------------

class MedicineBase(BaseModel):
    name: str = Field(..., min_length=1)
    dosage: str = Field(..., min_length=1, description="e.g. '1-0-1'")
    timing: Timing = "any"
    purpose: str = ""
    description: Optional[str] = None
    schedule: List[str] = Field(..., min_length=1, description="Daily times, HH:MM 24h")
    duration: int = Field(0, ge=0, description="Days")
    quantity: int = Field(0, ge=0)
    photo_url: Optional[str] = None

    @field_validator("schedule")
    @classmethod
    def validate_schedule(cls, v: List[str]) -> List[str]:
        return _clean_schedule(v)


class MedicineCreate(MedicineBase):
    pass


class MedicineUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    dosage: Optional[str] = Field(None, min_length=1)
    timing: Optional[Timing] = None
    purpose: Optional[str] = None
    description: Optional[str] = None
    schedule: Optional[List[str]] = Field(None, min_length=1)
    duration: Optional[int] = Field(None, ge=0)
    quantity: Optional[int] = Field(None, ge=0)
    photo_url: Optional[str] = None

    @field_validator("schedule")
    @classmethod
    def validate_schedule(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        return _clean_schedule(v) if v is not None else v


class MedicineRead(BaseModel):
    """Medicine as consumed by the schedule model and the alarm engine.

    Stored schedules are not re-validated here: a malformed time that made it
    into the database is skipped by the engine instead of failing the read.
    """
    id: UUID4
    user_id: UUID4
    name: str
    dosage: str
    timing: str = "any"
    purpose: str = ""
    description: Optional[str] = None
    schedule: List[str] = []
    duration: int = 0
    quantity: int = 0
    photo_url: Optional[str] = DEFAULT_PHOTO_URL
    status: str = "active"
    created_at: Optional[datetime] = None

    model_config = {
        "from_attributes": True,
        "frozen": True,
    }


# ---------------------------------------------------------------------------
# INTAKE HISTORY / STATS
# ---------------------------------------------------------------------------

class IntakeRead(BaseModel):
    id: UUID4
    user_id: UUID4
    medicine_id: UUID4
    medicine_name: str
    scheduled_at: str
    status: str
    taken_at: datetime
    points: int

    model_config = {
        "from_attributes": True
    }


class MissedDoseCreate(BaseModel):
    medicine_id: UUID4
    scheduled_at: str

    @field_validator("scheduled_at")
    @classmethod
    def validate_scheduled_at(cls, v: str) -> str:
        return _clean_schedule([v])[0]


class UserStatsRead(BaseModel):
    points: int = 0
    streak: int = 0


class IntakeResult(BaseModel):
    success: bool
    error: Optional[str] = None


# ---------------------------------------------------------------------------
# REMINDERS / ALARM
# ---------------------------------------------------------------------------

class ReminderOut(BaseModel):
    medicine_id: UUID4
    name: str
    dosage: str
    timing: str
    schedule_time: str
    time: str  # "hh:mm AM"
    status: Literal["taken", "snoozed", "pending", "overdue"]


class NextReminderOut(BaseModel):
    medicine_id: UUID4
    name: str
    dosage: str
    time: datetime
    seconds_left: int
    countdown: str  # "HH:MM:SS"


class TakenDoseOut(BaseModel):
    medicine_id: str
    schedule_time: str
    date: date


class AlertOut(BaseModel):
    title: str
    body: str
    tag: str
    shown_at: datetime


class AlarmStateOut(BaseModel):
    is_ringing: bool
    # Visual alert for the ringing dose, absent while idle
    alert: Optional[AlertOut] = None
    current_medicine: Optional[MedicineRead] = None
    current_schedule_time: Optional[str] = None
    alarm_time: Optional[datetime] = None
    dose_date: Optional[date] = None


class AlarmActionOut(BaseModel):
    success: bool
    state: AlarmStateOut
    snoozed_until: Optional[datetime] = None
