"""Top members by lifetime points."""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from rebox_api.models.rewards import RewardsAccount
from rebox_api.models.user import User

from .errors import StorageUnavailableError
from .levels import LevelSchedule, get_level_schedule

MAX_LEADERBOARD_SIZE = 100


@dataclass(frozen=True)
class LeaderboardRow:
    rank: int
    user_id: UUID
    name: str
    avatar_url: str | None
    location: str | None
    level: str
    lifetime_points: int


def display_name_for(user: User) -> str:
    if user.display_name:
        return user.display_name
    return user.email.split("@", 1)[0]


class LeaderboardProjector:
    """Rank users by lifetime points; ties go to the earlier signup, then the lower id."""

    def __init__(self, db_session: AsyncSession, *, schedule: LevelSchedule | None = None) -> None:
        self._db = db_session
        self._schedule = schedule or get_level_schedule()

    async def top_n(self, n: int = 10) -> list[LeaderboardRow]:
        n = max(1, min(n, MAX_LEADERBOARD_SIZE))
        lifetime = func.coalesce(RewardsAccount.lifetime_points, 0)
        stmt = (
            select(User, lifetime.label("lifetime_points"))
            .outerjoin(RewardsAccount, RewardsAccount.user_id == User.id)
            .order_by(lifetime.desc(), User.created_at.asc(), User.id.asc())
            .limit(n)
        )
        try:
            result = await self._db.execute(stmt)
        except (OperationalError, InterfaceError) as exc:
            raise StorageUnavailableError("Rewards storage is temporarily unavailable") from exc

        rows: list[LeaderboardRow] = []
        for index, (user, points) in enumerate(result.all(), start=1):
            points = int(points or 0)
            rows.append(
                LeaderboardRow(
                    rank=index,
                    user_id=user.id,
                    name=display_name_for(user),
                    avatar_url=user.avatar_url,
                    location=user.location,
                    level=self._schedule.level_for(points).name,
                    lifetime_points=points,
                )
            )
        logger.debug("Projected rewards leaderboard", size=len(rows))
        return rows


__all__ = ["LeaderboardProjector", "LeaderboardRow", "display_name_for"]
