"""Member-facing rewards endpoints: balance, history, redemption, leaderboard and levels."""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from rebox_api.api.dependencies.session import require_member_session
from rebox_api.api.errors import to_http_exception
from rebox_api.core.settings import settings
from rebox_api.db.session import get_session
from rebox_api.models.rewards import LedgerEntryType, PointsLedgerEntry
from rebox_api.models.user import User
from rebox_api.services.rewards import (
    LevelConfig,
    LevelSchedule,
    RewardsAggregate,
    RewardsError,
    RewardsService,
)


router = APIRouter(prefix="/rewards", tags=["rewards"])


class LevelConfigResponse(BaseModel):
    level: str
    minPoints: int
    maxPoints: Optional[int]
    multiplier: float
    benefits: List[str]


class RewardsAggregateResponse(BaseModel):
    availablePoints: int
    lifetimePoints: int
    level: str
    nextLevel: Optional[str]
    pointsToNextLevel: int
    progressToNextLevel: float
    currentLevelConfig: LevelConfigResponse
    nextLevelConfig: Optional[LevelConfigResponse]


class LedgerEntryResponse(BaseModel):
    id: UUID
    type: str
    points: int
    description: str
    sequence: int
    metadata: dict[str, Any]
    createdAt: datetime


class PaginationResponse(BaseModel):
    limit: int
    offset: int
    total: int


class TransactionsResponse(BaseModel):
    transactions: List[LedgerEntryResponse]
    pagination: PaginationResponse


class RedeemRequest(BaseModel):
    points: int = Field(..., description="Points to redeem, in multiples of the redemption unit")
    rewardType: str = Field(..., description="CASH, GIFTCARD or DONATION")
    details: Optional[dict[str, Any]] = Field(None, description="Payout details such as email or charity")


class RedeemResponse(BaseModel):
    entry: LedgerEntryResponse
    pointsRedeemed: int
    cashValue: float
    rewardType: str
    availablePoints: int
    replayed: bool


class LeaderboardEntryResponse(BaseModel):
    rank: int
    userId: UUID
    name: str
    avatarUrl: Optional[str]
    location: Optional[str]
    level: str
    lifetimePoints: int


class LevelsResponse(BaseModel):
    version: str
    levels: List[LevelConfigResponse]


def _serialize_level(schedule: LevelSchedule, level: LevelConfig) -> LevelConfigResponse:
    return LevelConfigResponse(
        level=level.name,
        minPoints=level.min_points,
        maxPoints=schedule.max_points(level),
        multiplier=level.multiplier,
        benefits=list(level.benefits),
    )


def _serialize_aggregate(schedule: LevelSchedule, aggregate: RewardsAggregate) -> RewardsAggregateResponse:
    next_level = aggregate.next_level_config
    return RewardsAggregateResponse(
        availablePoints=aggregate.available_points,
        lifetimePoints=aggregate.lifetime_points,
        level=aggregate.level.name,
        nextLevel=next_level.name if next_level else None,
        pointsToNextLevel=aggregate.points_to_next_level,
        progressToNextLevel=aggregate.progress_to_next,
        currentLevelConfig=_serialize_level(schedule, aggregate.current_level_config),
        nextLevelConfig=_serialize_level(schedule, next_level) if next_level else None,
    )


def _serialize_entry(entry: PointsLedgerEntry) -> LedgerEntryResponse:
    return LedgerEntryResponse(
        id=entry.id,
        type=entry.entry_type.value,
        points=entry.points,
        description=entry.description,
        sequence=entry.sequence,
        metadata=entry.metadata_json or {},
        createdAt=entry.created_at,
    )


@router.get("", response_model=RewardsAggregateResponse)
async def get_rewards(
    user: User = Depends(require_member_session),
    session: AsyncSession = Depends(get_session),
) -> RewardsAggregateResponse:
    """Return balances and level progress for the session user."""

    service = RewardsService(session)
    try:
        aggregate = await service.get_rewards(user.id)
    except RewardsError as exc:
        raise to_http_exception(exc) from exc
    return _serialize_aggregate(service.schedule, aggregate)


@router.get("/transactions", response_model=TransactionsResponse)
async def list_transactions(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    entry_type: Optional[str] = Query(None, alias="type", description="EARN, SPEND or ADJUSTMENT"),
    user: User = Depends(require_member_session),
    session: AsyncSession = Depends(get_session),
) -> TransactionsResponse:
    """Page through the session user's ledger, newest first."""

    parsed_type: LedgerEntryType | None = None
    if entry_type:
        try:
            parsed_type = LedgerEntryType(entry_type.upper())
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=f"Unsupported ledger type: {entry_type}") from exc

    service = RewardsService(session)
    try:
        entries, total = await service.list_transactions(user.id, limit=limit, offset=offset, entry_type=parsed_type)
    except RewardsError as exc:
        raise to_http_exception(exc) from exc

    return TransactionsResponse(
        transactions=[_serialize_entry(entry) for entry in entries],
        pagination=PaginationResponse(limit=limit, offset=offset, total=total),
    )


@router.post("/redeem", response_model=RedeemResponse, status_code=status.HTTP_201_CREATED)
async def redeem_points(
    request: RedeemRequest,
    response: Response,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key", max_length=128),
    user: User = Depends(require_member_session),
    session: AsyncSession = Depends(get_session),
) -> RedeemResponse:
    """Convert points into the requested reward."""

    service = RewardsService(session)
    try:
        result = await service.redeem(
            user.id,
            request.points,
            request.rewardType,
            idempotency_key=idempotency_key,
            details=request.details,
        )
    except RewardsError as exc:
        raise to_http_exception(exc) from exc

    if result.replayed:
        response.status_code = status.HTTP_200_OK

    return RedeemResponse(
        entry=_serialize_entry(result.entry),
        pointsRedeemed=result.points_redeemed,
        cashValue=float(result.cash_value),
        rewardType=result.reward_type,
        availablePoints=result.available_points,
        replayed=result.replayed,
    )


@router.get("/leaderboard", response_model=List[LeaderboardEntryResponse])
async def get_leaderboard(
    limit: int = Query(settings.leaderboard_default_limit, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
) -> List[LeaderboardEntryResponse]:
    """Top members by lifetime points."""

    service = RewardsService(session)
    try:
        rows = await service.top_n(limit)
    except RewardsError as exc:
        raise to_http_exception(exc) from exc
    return [
        LeaderboardEntryResponse(
            rank=row.rank,
            userId=row.user_id,
            name=row.name,
            avatarUrl=row.avatar_url,
            location=row.location,
            level=row.level,
            lifetimePoints=row.lifetime_points,
        )
        for row in rows
    ]


@router.get("/levels", response_model=LevelsResponse)
async def get_levels(session: AsyncSession = Depends(get_session)) -> LevelsResponse:
    schedule = RewardsService(session).schedule
    return LevelsResponse(
        version=schedule.version,
        levels=[_serialize_level(schedule, level) for level in schedule.levels],
    )
