from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import DateTime, Index, String, text
from sqlmodel import Column, Field, Relationship, SQLModel

if TYPE_CHECKING:
    from app.models.member import Member
    from app.models.schedule import Schedule


class ReservationStatus(str, Enum):
    pending = "pending"
    confirmed = "confirmed"
    waitlist = "waitlist"
    cancelled = "cancelled"
    deleted = "deleted"


# Holding a seat (counted against max_members)
SEATED_STATUSES = (ReservationStatus.pending, ReservationStatus.confirmed)
# Everything except cancelled/deleted blocks a second application
ACTIVE_STATUSES = (ReservationStatus.pending, ReservationStatus.confirmed, ReservationStatus.waitlist)

_ACTIVE_WHERE = text("status NOT IN ('cancelled', 'deleted')")


class Reservation(SQLModel, table=True):
    __table_args__ = (
        # One live reservation per member per schedule; cancelled/deleted rows are history
        Index(
            "uq_reservation_active_member",
            "schedule_id",
            "member_id",
            unique=True,
            sqlite_where=_ACTIVE_WHERE,
            postgresql_where=_ACTIVE_WHERE,
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    schedule_id: int = Field(foreign_key="schedule.id", index=True)
    member_id: int = Field(foreign_key="member.id", index=True)
    status: ReservationStatus = Field(default=ReservationStatus.pending, sa_column=Column(String, nullable=False))
    priority: int = Field(default=0)  # 1 = played the venue's previous schedule
    consecutive_count: int = Field(default=0)
    preferred_tee_time: Optional[str] = None
    team_number: Optional[int] = None  # 1-based index into Schedule.tee_times
    tee_time: Optional[str] = None
    applied_at: datetime = Field(default_factory=datetime.utcnow, sa_type=DateTime)

    # Admin team swap bookkeeping (cleared on revert)
    swap_partner_id: Optional[int] = None
    swap_original_team: Optional[int] = None
    swap_original_tee_time: Optional[str] = None

    score: Optional[int] = None  # Strokes recorded after play

    created_at: datetime = Field(default_factory=datetime.utcnow, sa_type=DateTime)
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_type=DateTime)

    # Relationships
    schedule: "Schedule" = Relationship(back_populates="reservations")
    member: "Member" = Relationship(back_populates="reservations")
