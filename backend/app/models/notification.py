"""In-app notification log; every notice is stored here before any SMS is attempted."""

from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import DateTime
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from app.models.member import Member


class Notification(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    member_id: int = Field(foreign_key="member.id", index=True)
    type: str = Field(default="general")  # reservation|waitlist|schedule|general
    title: str
    body: str
    url: Optional[str] = None
    is_read: bool = Field(default=False)
    sms_status: str = Field(default="skipped")  # sent|queued|dry_run|failed|skipped
    created_at: datetime = Field(default_factory=datetime.utcnow, sa_type=DateTime)

    # Relationships
    member: "Member" = Relationship(back_populates="notifications")
