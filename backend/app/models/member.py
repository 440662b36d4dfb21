from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import DateTime
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from app.models.notification import Notification
    from app.models.reservation import Reservation


class Member(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    phone: Optional[str] = None  # Free-form; normalised to E.164 only when texting
    employee_id: Optional[str] = Field(default=None, index=True)
    department: Optional[str] = None
    is_admin: bool = Field(default=False)
    is_active: bool = Field(default=True)
    avg_score: Optional[int] = None  # Mean of recorded reservation scores
    recent_score: Optional[int] = None
    created_at: datetime = Field(default_factory=datetime.utcnow, sa_type=DateTime)

    # Relationships
    reservations: List["Reservation"] = Relationship(back_populates="member")
    notifications: List["Notification"] = Relationship(back_populates="member")
