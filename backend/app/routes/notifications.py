from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict
from sqlmodel import Session, select

from app.auth_dependencies import get_current_member
from app.database import get_session
from app.models.member import Member
from app.models.notification import Notification

router = APIRouter()


class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    type: str
    title: str
    body: str
    url: Optional[str] = None
    is_read: bool
    created_at: datetime


class ReadAllResponse(BaseModel):
    updated_count: int


class UnreadCountResponse(BaseModel):
    count: int


class LatestNotificationResponse(BaseModel):
    notification: Optional[NotificationResponse] = None


@router.get("/notifications", response_model=List[NotificationResponse])
def list_notifications(
    unread_only: bool = False,
    limit: int = 50,
    member: Member = Depends(get_current_member),
    session: Session = Depends(get_session),
):
    """The caller's notifications, newest first"""
    query = select(Notification).where(Notification.member_id == member.id)
    if unread_only:
        query = query.where(Notification.is_read == False)  # noqa: E712
    query = query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(max(1, min(limit, 200)))
    return session.exec(query).all()


@router.get("/notifications/unread-count", response_model=UnreadCountResponse)
def unread_count(member: Member = Depends(get_current_member), session: Session = Depends(get_session)):
    unread = session.exec(
        select(Notification.id).where(Notification.member_id == member.id, Notification.is_read == False)  # noqa: E712
    ).all()
    return UnreadCountResponse(count=len(unread))


@router.get("/notifications/latest", response_model=LatestNotificationResponse)
def latest_unread(member: Member = Depends(get_current_member), session: Session = Depends(get_session)):
    """Newest unread notification for a toast, or null"""
    latest = session.exec(
        select(Notification)
        .where(Notification.member_id == member.id, Notification.is_read == False)  # noqa: E712
        .order_by(Notification.created_at.desc(), Notification.id.desc())
    ).first()
    return LatestNotificationResponse(
        notification=NotificationResponse.model_validate(latest) if latest else None
    )


@router.post("/notifications/read-all", response_model=ReadAllResponse)
def mark_all_read(member: Member = Depends(get_current_member), session: Session = Depends(get_session)):
    unread = session.exec(
        select(Notification).where(Notification.member_id == member.id, Notification.is_read == False)  # noqa: E712
    ).all()
    for notification in unread:
        notification.is_read = True
        session.add(notification)
    session.commit()
    return ReadAllResponse(updated_count=len(unread))


@router.post("/notifications/{notification_id}/read", response_model=NotificationResponse)
def mark_read(
    notification_id: int,
    member: Member = Depends(get_current_member),
    session: Session = Depends(get_session),
):
    notification = session.get(Notification, notification_id)
    # Another member's notification is reported as missing
    if not notification or notification.member_id != member.id:
        raise HTTPException(status_code=404, detail="Notification not found")

    notification.is_read = True
    session.add(notification)
    session.commit()
    session.refresh(notification)
    return notification
