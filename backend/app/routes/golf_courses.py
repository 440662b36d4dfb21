from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, field_validator
from sqlmodel import Session, select

from app.auth_dependencies import get_current_member, require_admin
from app.database import get_session
from app.models.golf_course import DEFAULT_MAX_MEMBERS, GolfCourse
from app.models.member import Member
from app.services.schedule_service import parse_tee_times

router = APIRouter()


def _check_tee_time_start(v):
    parsed = parse_tee_times(v)
    if len(parsed) != 1:
        raise ValueError("tee_time_start must be a single HH:MM time")
    return parsed[0]


class GolfCourseCreate(BaseModel):
    name: str
    location: Optional[str] = None
    max_members: int = DEFAULT_MAX_MEMBERS
    tee_time_start: str = "06:00"
    schedule_week: int = 1
    is_screen: bool = False

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError("name is required")
        return v.strip()

    @field_validator("max_members")
    @classmethod
    def validate_max_members(cls, v):
        if v < 1:
            raise ValueError("max_members must be >= 1")
        return v

    @field_validator("tee_time_start")
    @classmethod
    def validate_tee_time_start(cls, v):
        return _check_tee_time_start(v)

    @field_validator("schedule_week")
    @classmethod
    def validate_schedule_week(cls, v):
        if not 1 <= v <= 5:
            raise ValueError("schedule_week must be between 1 and 5")
        return v


class GolfCourseUpdate(BaseModel):
    name: Optional[str] = None
    location: Optional[str] = None
    max_members: Optional[int] = None
    tee_time_start: Optional[str] = None
    schedule_week: Optional[int] = None
    is_screen: Optional[bool] = None
    is_active: Optional[bool] = None

    @field_validator("name", "max_members", "tee_time_start", "schedule_week", "is_screen", "is_active")
    @classmethod
    def reject_null(cls, v, info):
        if v is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return v

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v.strip():
            raise ValueError("name is required")
        return v.strip()

    @field_validator("max_members")
    @classmethod
    def validate_max_members(cls, v):
        if v < 1:
            raise ValueError("max_members must be >= 1")
        return v

    @field_validator("tee_time_start")
    @classmethod
    def validate_tee_time_start(cls, v):
        return _check_tee_time_start(v)

    @field_validator("schedule_week")
    @classmethod
    def validate_schedule_week(cls, v):
        if not 1 <= v <= 5:
            raise ValueError("schedule_week must be between 1 and 5")
        return v


class GolfCourseResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    location: Optional[str] = None
    max_members: int
    tee_time_start: str
    schedule_week: int
    is_screen: bool
    is_active: bool
    created_at: datetime


@router.get("/golf-courses", response_model=List[GolfCourseResponse])
def list_golf_courses(
    include_inactive: bool = False,
    member: Member = Depends(get_current_member),
    session: Session = Depends(get_session),
):
    query = select(GolfCourse)
    if not include_inactive:
        query = query.where(GolfCourse.is_active == True)  # noqa: E712
    return session.exec(query.order_by(GolfCourse.name)).all()


@router.post("/golf-courses", response_model=GolfCourseResponse, status_code=201)
def create_golf_course(
    course_data: GolfCourseCreate,
    admin: Member = Depends(require_admin),
    session: Session = Depends(get_session),
):
    existing = session.exec(select(GolfCourse).where(GolfCourse.name == course_data.name)).first()
    if existing:
        raise HTTPException(status_code=409, detail=f"Golf course '{course_data.name}' already exists")

    course = GolfCourse(**course_data.model_dump())
    session.add(course)
    session.commit()
    session.refresh(course)
    return course


@router.patch("/golf-courses/{course_id}", response_model=GolfCourseResponse)
def update_golf_course(
    course_id: int,
    course_data: GolfCourseUpdate,
    admin: Member = Depends(require_admin),
    session: Session = Depends(get_session),
):
    """Update a venue; max_members applies to schedules that do not set their own"""
    course = session.get(GolfCourse, course_id)
    if not course:
        raise HTTPException(status_code=404, detail="Golf course not found")

    update_data = course_data.model_dump(exclude_unset=True)
    if "name" in update_data and update_data["name"] != course.name:
        existing = session.exec(
            select(GolfCourse).where(GolfCourse.name == update_data["name"], GolfCourse.id != course_id)
        ).first()
        if existing:
            raise HTTPException(status_code=409, detail=f"Golf course '{update_data['name']}' already exists")

    for key, value in update_data.items():
        setattr(course, key, value)
    session.add(course)
    session.commit()
    session.refresh(course)
    return course
