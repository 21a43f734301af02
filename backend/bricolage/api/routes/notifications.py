"""
Notification inbox API routes.
"""
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from bricolage.api.dependencies import Actor, get_current_actor, get_db
from bricolage.models.notifications import DeliveryStatus, NotificationType
from bricolage.services.notification_service import NotificationInbox


# Pydantic schemas
class NotificationResponse(BaseModel):
    id: UUID
    booking_id: Optional[UUID] = None
    event_type: NotificationType
    message: str
    metadata: Optional[dict] = Field(None, validation_alias="extra_data")
    delivery_status: DeliveryStatus
    is_read: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class UnreadCount(BaseModel):
    count: int


class MarkAllReadResult(BaseModel):
    updated: int


# Router
router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=List[NotificationResponse])
def list_notifications(
    unread_only: bool = Query(False, description="Only notifications not yet read"),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> List[NotificationResponse]:
    """The caller's 50 most recent notifications."""
    notifications = NotificationInbox(db).list_for_recipient(actor.id, unread_only=unread_only)
    return [NotificationResponse.model_validate(n) for n in notifications]


@router.get("/unread/count", response_model=UnreadCount)
def unread_count(
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> UnreadCount:
    return UnreadCount(count=NotificationInbox(db).unread_count(actor.id))


@router.patch("/read-all", response_model=MarkAllReadResult)
def mark_all_read(
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> MarkAllReadResult:
    return MarkAllReadResult(updated=NotificationInbox(db).mark_all_read(actor.id))


@router.patch("/{notification_id}/read", response_model=NotificationResponse)
def mark_read(
    notification_id: UUID,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> NotificationResponse:
    notification = NotificationInbox(db).mark_read(notification_id, actor.id)
    return NotificationResponse.model_validate(notification)
