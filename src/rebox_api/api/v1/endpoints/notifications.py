from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from rebox_api.api.dependencies.session import require_member_session
from rebox_api.db.session import get_session
from rebox_api.models.user import User
from rebox_api.services.notifications import NotificationInbox

router = APIRouter(prefix="/notifications", tags=["Notifications"])


class NotificationResponse(BaseModel):
    id: UUID
    category: str
    event_type: str = Field(..., description="reward:earned, reward:level_up or reward:redeemed")
    title: str
    message: str
    payload: dict[str, Any]
    is_read: bool
    created_at: datetime
    read_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class NotificationListResponse(BaseModel):
    notifications: List[NotificationResponse]
    total: int


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    unread_only: bool = Query(False, alias="unreadOnly"),
    user: User = Depends(require_member_session),
    session: AsyncSession = Depends(get_session),
) -> NotificationListResponse:
    """List the session user's notifications, newest first."""

    items, total = await NotificationInbox(session).list_for_user(
        user.id, limit=limit, offset=offset, unread_only=unread_only
    )
    return NotificationListResponse(
        notifications=[NotificationResponse.model_validate(item) for item in items],
        total=total,
    )


@router.post("/{notification_id}/read", response_model=NotificationResponse, status_code=status.HTTP_200_OK)
async def mark_notification_read(
    notification_id: UUID,
    user: User = Depends(require_member_session),
    session: AsyncSession = Depends(get_session),
) -> NotificationResponse:
    notification = await NotificationInbox(session).mark_read(user.id, notification_id)
    if notification is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    return NotificationResponse.model_validate(notification)
