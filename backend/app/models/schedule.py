from datetime import date, datetime
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import DateTime, String
from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Column, Field, Relationship, SQLModel

from app.models.golf_course import DEFAULT_MAX_MEMBERS

if TYPE_CHECKING:
    from app.models.golf_course import GolfCourse
    from app.models.reservation import Reservation


class ScheduleStatus(str, Enum):
    pending = "pending"  # Created but not yet open for applications (see open_at)
    open = "open"
    closed = "closed"
    completed = "completed"


class Schedule(SQLModel, table=True):
    __table_args__ = (SAUniqueConstraint("golf_course_id", "play_date", name="uq_schedule_course_date"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    golf_course_id: int = Field(foreign_key="golf_course.id", index=True)
    play_date: date = Field(index=True)
    tee_times: Optional[str] = None  # Comma-delimited "HH:MM" list, in tee-off order
    max_members: int = Field(default=DEFAULT_MAX_MEMBERS)
    status: ScheduleStatus = Field(default=ScheduleStatus.open, sa_column=Column(String, nullable=False))
    open_at: Optional[datetime] = Field(default=None, sa_type=DateTime)
    notes: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow, sa_type=DateTime)
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_type=DateTime)

    # Relationships
    golf_course: "GolfCourse" = Relationship(back_populates="schedules")
    reservations: List["Reservation"] = Relationship(back_populates="schedule")
