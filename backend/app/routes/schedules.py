import os
from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, Query
from pydantic import BaseModel, field_validator, model_validator
from sqlmodel import Session, select

from app.auth_dependencies import get_current_member, require_admin
from app.database import get_session
from app.models.golf_course import GolfCourse
from app.models.member import Member
from app.models.reservation import SEATED_STATUSES, Reservation
from app.models.schedule import Schedule, ScheduleStatus
from app.services.notification_service import dispatch_notices
from app.services.record_store import RecordStore, StorageError
from app.services.reservation_errors import ReservationError
from app.services.reservation_lifecycle import schedule_capacity
from app.services.schedule_service import (
    complete_schedule,
    create_schedule,
    delete_schedule,
    generate_yearly_schedules,
    open_due_schedules,
    parse_tee_times,
    schedule_tee_times,
)
from app.utils.http_errors import http_error

router = APIRouter()


class ScheduleCreate(BaseModel):
    golf_course_id: int
    play_date: date
    tee_times: Optional[List[str]] = None
    max_members: Optional[int] = None
    status: ScheduleStatus = ScheduleStatus.open
    open_at: Optional[datetime] = None
    notes: Optional[str] = None

    @field_validator("tee_times", mode="before")
    @classmethod
    def normalize_tee_times(cls, v):
        """Accept "06:00,06:08" as well as ["06:00", "06:08"]."""
        if v is None:
            return None
        return parse_tee_times(v)

    @field_validator("max_members")
    @classmethod
    def validate_max_members(cls, v):
        if v is not None and v < 1:
            raise ValueError("max_members must be >= 1")
        return v

    @model_validator(mode="after")
    def validate_open_at(self):
        if self.status == ScheduleStatus.pending and self.open_at is None:
            raise ValueError("open_at is required for a pending schedule")
        return self


class ScheduleUpdate(BaseModel):
    play_date: Optional[date] = None
    tee_times: Optional[List[str]] = None
    max_members: Optional[int] = None
    status: Optional[ScheduleStatus] = None
    open_at: Optional[datetime] = None
    notes: Optional[str] = None

    @field_validator("tee_times", mode="before")
    @classmethod
    def normalize_tee_times(cls, v):
        if v is None:
            return None
        return parse_tee_times(v)

    @field_validator("play_date", "max_members", "status")
    @classmethod
    def reject_null(cls, v, info):
        # Only reached when the field is sent explicitly; these columns are NOT NULL
        if v is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return v

    @field_validator("max_members")
    @classmethod
    def validate_max_members(cls, v):
        if v is not None and v < 1:
            raise ValueError("max_members must be >= 1")
        return v


class ScheduleResponse(BaseModel):
    id: int
    golf_course_id: int
    play_date: date
    tee_times: List[str]
    max_members: int
    status: str
    open_at: Optional[datetime] = None
    notes: Optional[str] = None
    course_name: Optional[str] = None
    location: Optional[str] = None
    is_screen: bool = False
    reserved_count: int = 0
    my_reservation_id: Optional[int] = None


class GenerateRequest(BaseModel):
    year: int
    golf_course_ids: List[int]


class GenerateResponse(BaseModel):
    year: int
    created_count: int


class OpenSchedulesResponse(BaseModel):
    opened_count: int


def _to_response(session: Session, schedule: Schedule, member_id: Optional[int] = None) -> ScheduleResponse:
    course = session.get(GolfCourse, schedule.golf_course_id)
    reservations = session.exec(select(Reservation).where(Reservation.schedule_id == schedule.id)).all()
    mine = None
    if member_id is not None:
        mine = next(
            (r for r in reservations if r.member_id == member_id and r.status not in ("cancelled", "deleted")),
            None,
        )
    return ScheduleResponse(
        id=schedule.id,
        golf_course_id=schedule.golf_course_id,
        play_date=schedule.play_date,
        tee_times=schedule_tee_times(schedule),
        max_members=schedule_capacity(RecordStore(session), schedule),
        status=schedule.status,
        open_at=schedule.open_at,
        notes=schedule.notes,
        course_name=course.name if course else None,
        location=course.location if course else None,
        is_screen=course.is_screen if course else False,
        reserved_count=sum(1 for r in reservations if r.status in SEATED_STATUSES),
        my_reservation_id=mine.id if mine else None,
    )


@router.get("/schedules", response_model=List[ScheduleResponse])
def list_schedules(
    year: Optional[int] = Query(None),
    month: Optional[int] = Query(None, ge=1, le=12),
    golf_course_id: Optional[int] = Query(None),
    member: Member = Depends(get_current_member),
    session: Session = Depends(get_session),
):
    """List schedules by play date, optionally filtered by year, month and course"""
    query = select(Schedule)
    if golf_course_id is not None:
        query = query.where(Schedule.golf_course_id == golf_course_id)
    schedules = session.exec(query.order_by(Schedule.play_date)).all()

    if year is not None:
        schedules = [s for s in schedules if s.play_date.year == year]
    if month is not None:
        target_year = year or date.today().year
        schedules = [s for s in schedules if s.play_date.year == target_year and s.play_date.month == month]
    return [_to_response(session, s, member.id) for s in schedules]


@router.get("/schedules/available", response_model=List[ScheduleResponse])
def available_schedules(member: Member = Depends(get_current_member), session: Session = Depends(get_session)):
    """Open schedules from today on, with seat counts and the caller's reservation"""
    schedules = session.exec(
        select(Schedule)
        .where(Schedule.status == ScheduleStatus.open.value, Schedule.play_date >= date.today())
        .order_by(Schedule.play_date)
    ).all()
    return [_to_response(session, s, member.id) for s in schedules]


@router.post("/schedules", response_model=ScheduleResponse, status_code=201)
def create(
    request: ScheduleCreate,
    admin: Member = Depends(require_admin),
    session: Session = Depends(get_session),
):
    """Create a schedule; one per course per date"""
    try:
        schedule = create_schedule(session, **request.model_dump())
    except (ReservationError, StorageError) as e:
        raise http_error(e)
    return _to_response(session, schedule)


@router.post("/schedules/generate", response_model=GenerateResponse, status_code=201)
def generate(
    request: GenerateRequest,
    admin: Member = Depends(require_admin),
    session: Session = Depends(get_session),
):
    """Create a year of monthly schedules for the selected courses"""
    try:
        created = generate_yearly_schedules(session, request.year, request.golf_course_ids)
    except (ReservationError, StorageError) as e:
        raise http_error(e)
    return GenerateResponse(year=request.year, created_count=created)


@router.post("/cron/open-schedules", response_model=OpenSchedulesResponse)
def open_schedules(
    background_tasks: BackgroundTasks,
    authorization: Optional[str] = Header(default=None),
    session: Session = Depends(get_session),
):
    """Open pending schedules whose open_at has passed. Bearer CRON_SECRET required."""
    secret = os.getenv("CRON_SECRET", "")
    if not secret:
        raise HTTPException(status_code=500, detail="CRON_SECRET is not configured")
    if authorization != f"Bearer {secret}":
        raise HTTPException(status_code=401, detail="Invalid cron credentials")

    try:
        opened, notices = open_due_schedules(session)
    except StorageError as e:
        raise http_error(e)
    dispatch_notices(background_tasks, session, notices)
    return OpenSchedulesResponse(opened_count=opened)


@router.get("/schedules/{schedule_id}", response_model=ScheduleResponse)
def get_schedule(
    schedule_id: int,
    member: Member = Depends(get_current_member),
    session: Session = Depends(get_session),
):
    schedule = session.get(Schedule, schedule_id)
    if not schedule:
        raise HTTPException(status_code=404, detail="Schedule not found")
    return _to_response(session, schedule, member.id)


@router.patch("/schedules/{schedule_id}", response_model=ScheduleResponse)
def update_schedule(
    schedule_id: int,
    request: ScheduleUpdate,
    admin: Member = Depends(require_admin),
    session: Session = Depends(get_session),
):
    """Update schedule fields; tee_times and max_members take effect at the next team assignment"""
    schedule = session.get(Schedule, schedule_id)
    if not schedule:
        raise HTTPException(status_code=404, detail="Schedule not found")

    update_data = request.model_dump(exclude_unset=True)
    if "tee_times" in update_data:
        update_data["tee_times"] = ",".join(update_data["tee_times"] or []) or None
    if "play_date" in update_data and update_data["play_date"] != schedule.play_date:
        clash = session.exec(
            select(Schedule).where(
                Schedule.golf_course_id == schedule.golf_course_id,
                Schedule.play_date == update_data["play_date"],
                Schedule.id != schedule_id,
            )
        ).first()
        if clash:
            raise HTTPException(status_code=409, detail="DUPLICATE_SCHEDULE: Course already has a schedule on that date")

    try:
        RecordStore(session).update(Schedule, schedule_id, **update_data)
    except StorageError as e:
        raise http_error(e)
    return _to_response(session, session.get(Schedule, schedule_id))


@router.post("/schedules/{schedule_id}/complete", response_model=ScheduleResponse)
def complete(
    schedule_id: int,
    admin: Member = Depends(require_admin),
    session: Session = Depends(get_session),
):
    """Mark a schedule completed; its reservations can no longer be cancelled"""
    try:
        schedule = complete_schedule(session, schedule_id)
    except (ReservationError, StorageError) as e:
        raise http_error(e)
    return _to_response(session, schedule)


@router.delete("/schedules/{schedule_id}", status_code=204)
def delete(
    schedule_id: int,
    admin: Member = Depends(require_admin),
    session: Session = Depends(get_session),
):
    """Delete a schedule that has no reservations"""
    try:
        delete_schedule(session, schedule_id)
    except (ReservationError, StorageError) as e:
        raise http_error(e)
    return None
