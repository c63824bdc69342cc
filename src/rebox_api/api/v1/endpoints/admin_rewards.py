"""Operator endpoints for awarding, adjusting and auditing rewards."""

from __future__ import annotations

from decimal import Decimal
from typing import Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from rebox_api.api.dependencies.security import require_admin_api_key
from rebox_api.api.errors import to_http_exception
from rebox_api.db.session import get_session
from rebox_api.services.rewards import LedgerAppendResult, RewardsError, RewardsService

from .rewards import LedgerEntryResponse, RewardsAggregateResponse, _serialize_aggregate, _serialize_entry


router = APIRouter(
    prefix="/admin/rewards",
    tags=["admin-rewards"],
    dependencies=[Depends(require_admin_api_key)],
)


class PickupAwardRequest(BaseModel):
    userId: UUID
    pickupReference: str = Field(..., min_length=1, max_length=64)
    totalValue: Decimal = Field(..., ge=0, description="Estimated value of the recycled items in dollars")
    itemCount: int = Field(..., ge=0)


class BuybackAwardRequest(BaseModel):
    userId: UUID
    offerReference: str = Field(..., min_length=1, max_length=64)
    offeredPrice: Decimal = Field(..., ge=0)
    brandName: Optional[str] = None


class AdjustmentRequest(BaseModel):
    userId: UUID
    points: int = Field(..., description="Signed correction; negative values debit the balance")
    reason: str = Field(..., min_length=1)
    actorId: Optional[str] = Field(None, description="Operator recording the adjustment")


class LedgerAppendResponse(BaseModel):
    entry: LedgerEntryResponse
    availablePoints: int
    lifetimePoints: int
    level: str
    levelChanged: bool
    replayed: bool


class RewardsSummaryResponse(BaseModel):
    totalPointsIssued: int
    outstandingPoints: int
    pointsRedeemed: int
    memberCount: int
    membersByLevel: Dict[str, int]


def _serialize_append(result: LedgerAppendResult) -> LedgerAppendResponse:
    return LedgerAppendResponse(
        entry=_serialize_entry(result.entry),
        availablePoints=result.account.available_points,
        lifetimePoints=result.account.lifetime_points,
        level=result.account.level,
        levelChanged=result.level_changed,
        replayed=result.replayed,
    )


@router.post("/earn/pickup", response_model=LedgerAppendResponse, status_code=status.HTTP_201_CREATED)
async def award_pickup(
    request: PickupAwardRequest,
    session: AsyncSession = Depends(get_session),
) -> LedgerAppendResponse:
    service = RewardsService(session)
    try:
        result = await service.award_pickup(
            request.userId,
            request.pickupReference,
            request.totalValue,
            request.itemCount,
        )
    except RewardsError as exc:
        raise to_http_exception(exc) from exc
    return _serialize_append(result)


@router.post("/earn/buyback", response_model=LedgerAppendResponse, status_code=status.HTTP_201_CREATED)
async def award_buyback(
    request: BuybackAwardRequest,
    session: AsyncSession = Depends(get_session),
) -> LedgerAppendResponse:
    service = RewardsService(session)
    try:
        result = await service.award_buyback(
            request.userId,
            request.offerReference,
            request.offeredPrice,
            request.brandName,
        )
    except RewardsError as exc:
        raise to_http_exception(exc) from exc
    return _serialize_append(result)


@router.post("/adjust", response_model=LedgerAppendResponse, status_code=status.HTTP_201_CREATED)
async def adjust_points(
    request: AdjustmentRequest,
    session: AsyncSession = Depends(get_session),
) -> LedgerAppendResponse:
    service = RewardsService(session)
    try:
        result = await service.adjust(request.userId, request.points, request.reason, request.actorId)
    except RewardsError as exc:
        raise to_http_exception(exc) from exc
    return _serialize_append(result)


@router.post("/{user_id}/refold", response_model=RewardsAggregateResponse)
async def refold_account(
    user_id: UUID,
    session: AsyncSession = Depends(get_session),
) -> RewardsAggregateResponse:
    """Rebuild the cached balances for ``user_id`` from the ledger."""

    service = RewardsService(session)
    try:
        aggregate = await service.refold(user_id)
    except RewardsError as exc:
        raise to_http_exception(exc) from exc
    return _serialize_aggregate(service.schedule, aggregate)


@router.get("/summary", response_model=RewardsSummaryResponse)
async def rewards_summary(session: AsyncSession = Depends(get_session)) -> RewardsSummaryResponse:
    summary = await RewardsService(session).summary()
    return RewardsSummaryResponse(
        totalPointsIssued=summary.total_points_issued,
        outstandingPoints=summary.outstanding_points,
        pointsRedeemed=summary.points_redeemed,
        memberCount=summary.member_count,
        membersByLevel=summary.members_by_level,
    )
