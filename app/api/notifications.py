"""Operator view of the messages the bot has sent."""
from datetime import datetime
from typing import List, Literal, Optional

from fastapi import APIRouter, Query
from pydantic import BaseModel

from app.services.notification import get_global_notifier

router = APIRouter()

NotificationType = Literal["price_alert", "flight_status", "summary", "system"]


class NotificationRecord(BaseModel):
    id: str
    user_id: str
    title: str
    message: str
    priority: str
    timestamp: datetime
    type: NotificationType
    delivered: bool


class ClearedHistory(BaseModel):
    status: str = "cleared"
    dropped: int


@router.get("/notifications", response_model=List[NotificationRecord])
async def list_notifications(
    limit: int = Query(50, ge=1, le=100),
    user_id: Optional[str] = None,
    type: Optional[NotificationType] = None,
    undelivered_only: bool = False,
):
    """
    Recent notifications, newest first.

    Filter by chat user or message type; `undelivered_only` lists the
    messages Telegram refused.
    """
    return get_global_notifier().get_notifications(
        limit=limit, user_id=user_id, type=type, undelivered_only=undelivered_only
    )


@router.delete("/notifications", response_model=ClearedHistory)
async def clear_notifications():
    dropped = get_global_notifier().clear_notifications()
    return ClearedHistory(dropped=dropped)
