from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import DateTime
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from app.models.schedule import Schedule

DEFAULT_MAX_MEMBERS = 12


class GolfCourse(SQLModel, table=True):
    __tablename__ = "golf_course"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(unique=True)
    location: Optional[str] = None
    max_members: int = Field(default=DEFAULT_MAX_MEMBERS)
    tee_time_start: str = Field(default="06:00")  # First tee-time of a generated schedule
    schedule_week: int = Field(default=1)  # Nth Saturday of the month used by yearly generation
    is_screen: bool = Field(default=False)
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=datetime.utcnow, sa_type=DateTime)

    # Relationships
    schedules: List["Schedule"] = Relationship(back_populates="golf_course")
