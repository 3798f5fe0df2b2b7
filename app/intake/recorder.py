import logging
import uuid
from datetime import date, timedelta
from typing import Dict, List, Optional, Union

from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.models import IntakeRecord, UserStats
from app.db.schema import IntakeResult, UserStatsRead
from app.scheduling.clock import Clock, SystemClock

logger = logging.getLogger(__name__)

REWARD_POINTS = 10

UUIDLike = Union[str, uuid.UUID]


def _as_uuid(value: UUIDLike) -> uuid.UUID:
    return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))


async def increment_points(db: AsyncSession, user_id: uuid.UUID, delta: int) -> None:
    """Atomic ``points = points + delta``; creates the stats row on first use."""
    result = await db.execute(
        update(UserStats)
        .where(UserStats.user_id == user_id)
        .values(points=UserStats.points + delta)
    )
    if result.rowcount:
        return

    try:
        async with db.begin_nested():
            await db.execute(insert(UserStats).values(user_id=user_id, points=delta, streak=0))
    except IntegrityError:
        # Another writer created the row first; fall back to the increment
        await db.execute(
            update(UserStats)
            .where(UserStats.user_id == user_id)
            .values(points=UserStats.points + delta)
        )


def compute_streak(days: Dict[date, Dict[str, int]], today: date) -> int:
    """Consecutive days ending today with a taken dose and no missed one.

    A today without any record yet does not break the streak; counting starts
    from yesterday in that case.
    """
    def perfect(day: date) -> bool:
        counts = days.get(day, {})
        return counts.get("taken", 0) > 0 and counts.get("missed", 0) == 0

    cursor = today if today in days else today - timedelta(days=1)
    streak = 0
    while perfect(cursor):
        streak += 1
        cursor -= timedelta(days=1)
    return streak


class IntakeRecorder:
    """Durable intake history and reward points."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        clock: Optional[Clock] = None,
        reward_points: int = REWARD_POINTS,
    ):
        self.session_factory = session_factory
        self.clock = clock or SystemClock()
        self.reward_points = reward_points

    async def record(
        self,
        user_id: UUIDLike,
        medicine_id: UUIDLike,
        medicine_name: str,
        scheduled_at: str,
        status: str,
    ) -> IntakeResult:
        if status not in ("taken", "missed"):
            return IntakeResult(success=False, error=f"Unknown intake status '{status}'")

        points = self.reward_points if status == "taken" else 0
        user_uuid = _as_uuid(user_id)

        async with self.session_factory() as db:
            try:
                db.add(IntakeRecord(
                    user_id=user_uuid,
                    medicine_id=_as_uuid(medicine_id),
                    medicine_name=medicine_name,
                    scheduled_at=scheduled_at,
                    status=status,
                    taken_at=self.clock.now(),
                    points=points,
                ))
                if points:
                    await db.flush()
                    await increment_points(db, user_uuid, points)
                await db.commit()
            except SQLAlchemyError as e:
                await db.rollback()
                logger.error("Error updating intake for user %s: %s", user_id, e)
                return IntakeResult(success=False, error="Failed to update intake.")

        return IntakeResult(success=True)

    async def list_history(self, user_id: UUIDLike, limit: Optional[int] = None) -> List[IntakeRecord]:
        async with self.session_factory() as db:
            query = (
                select(IntakeRecord)
                .where(IntakeRecord.user_id == _as_uuid(user_id))
                .order_by(IntakeRecord.taken_at.desc())
            )
            if limit:
                query = query.limit(limit)
            result = await db.execute(query)
            return list(result.scalars().all())

    async def get_stats(self, user_id: UUIDLike) -> UserStatsRead:
        user_uuid = _as_uuid(user_id)
        async with self.session_factory() as db:
            stats = await db.get(UserStats, user_uuid)
            if stats is None:
                # Initialize stats if they don't exist
                stats = UserStats(user_id=user_uuid, points=0, streak=0)
                db.add(stats)

            result = await db.execute(
                select(IntakeRecord.taken_at, IntakeRecord.status)
                .where(IntakeRecord.user_id == user_uuid)
            )
            days: Dict[date, Dict[str, int]] = {}
            for taken_at, status in result.all():
                counts = days.setdefault(taken_at.date(), {})
                counts[status] = counts.get(status, 0) + 1

            stats.streak = compute_streak(days, self.clock.now().date())
            snapshot = UserStatsRead(points=stats.points or 0, streak=stats.streak)
            await db.commit()
            return snapshot
