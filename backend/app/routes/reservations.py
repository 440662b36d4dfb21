"""
Reservation API Routes
Member apply/cancel, admin overrides, team assignment and team swaps.
"""

from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, field_validator
from sqlmodel import Session, select

from app.auth_dependencies import get_current_member, require_admin
from app.database import get_session
from app.models.golf_course import GolfCourse
from app.models.member import Member
from app.models.reservation import Reservation
from app.models.schedule import Schedule
from app.services.notification_service import dispatch_notices
from app.services.record_store import StorageError
from app.services.reservation_errors import ReservationError
from app.services.reservation_lifecycle import (
    admin_book_for,
    admin_delete,
    admin_hard_delete,
    admin_set_status,
    apply_for_schedule,
    cancel_reservation,
)
from app.services.schedule_service import schedule_tee_times
from app.services.score_service import record_score
from app.utils.http_errors import http_error
from app.utils.team_assignment import AssignmentEntry, assign_teams, fairness_key
from app.utils.team_swap import revert_swap, swap_teams

router = APIRouter()


# ============================================================================
# Request/Response Models
# ============================================================================


class ApplyRequest(BaseModel):
    preferred_tee_time: Optional[str] = None


class ApplyResponse(BaseModel):
    reservation_id: int
    status: str  # "pending" | "waitlist"
    position: int
    priority: int


class CancelResponse(BaseModel):
    reservation_id: int
    previous_status: str
    promoted_member_id: Optional[int] = None


class StatusUpdateRequest(BaseModel):
    status: str

    @field_validator("status")
    @classmethod
    def strip_status(cls, v):
        return v.strip().lower()


class BookForRequest(BaseModel):
    member_id: int


class ScoreRequest(BaseModel):
    score: Optional[int] = None  # None clears a recorded score


class ScoreResponse(BaseModel):
    reservation_id: int
    score: Optional[int] = None
    member_id: int
    avg_score: Optional[int] = None
    recent_score: Optional[int] = None


class SwapRequest(BaseModel):
    partner_reservation_id: int
    from_team: Optional[int] = None


class ReservationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    schedule_id: int
    member_id: int
    status: str
    priority: int
    consecutive_count: int
    preferred_tee_time: Optional[str] = None
    team_number: Optional[int] = None
    tee_time: Optional[str] = None
    applied_at: datetime
    swap_partner_id: Optional[int] = None
    swap_original_team: Optional[int] = None
    score: Optional[int] = None


class RankedReservationResponse(ReservationResponse):
    member_name: Optional[str] = None
    employee_id: Optional[str] = None
    department: Optional[str] = None
    phone: Optional[str] = None


class MyReservationResponse(ReservationResponse):
    play_date: Optional[date] = None
    tee_times: List[str] = []
    schedule_status: Optional[str] = None
    course_name: Optional[str] = None
    location: Optional[str] = None


class TeamResponse(BaseModel):
    team_number: int
    tee_time: str
    reservation_ids: List[int]


class AssignTeamsResponse(BaseModel):
    assigned_count: int
    confirmed_count: int
    waitlist_count: int
    overflow_count: int
    teams: List[TeamResponse]


class SwapResponse(BaseModel):
    reservation: ReservationResponse
    partner: Optional[ReservationResponse] = None


# ============================================================================
# Member Endpoints
# ============================================================================


@router.post("/schedules/{schedule_id}/reservations", response_model=ApplyResponse, status_code=201)
def apply(
    schedule_id: int,
    background_tasks: BackgroundTasks,
    request: Optional[ApplyRequest] = None,
    member: Member = Depends(get_current_member),
    session: Session = Depends(get_session),
):
    """
    Apply for a schedule.

    Returns status "pending" while seats remain, "waitlist" once the schedule
    is at capacity, and the 1-based queue position.
    """
    preferred = request.preferred_tee_time if request else None
    try:
        result = apply_for_schedule(session, member, schedule_id, preferred)
    except (ReservationError, StorageError) as e:
        raise http_error(e)

    dispatch_notices(background_tasks, session, result.notices)
    return ApplyResponse(
        reservation_id=result.reservation_id,
        status=result.status.value,
        position=result.position,
        priority=result.priority,
    )


@router.post("/reservations/{reservation_id}/cancel", response_model=CancelResponse)
def cancel(
    reservation_id: int,
    background_tasks: BackgroundTasks,
    member: Member = Depends(get_current_member),
    session: Session = Depends(get_session),
):
    """Cancel a reservation; a freed seat promotes the earliest waitlist applicant."""
    try:
        result = cancel_reservation(session, member, reservation_id)
    except (ReservationError, StorageError) as e:
        raise http_error(e)

    dispatch_notices(background_tasks, session, result.notices)
    return CancelResponse(
        reservation_id=reservation_id,
        previous_status=result.previous_status.value,
        promoted_member_id=result.promoted_member_id,
    )


@router.get("/reservations/mine", response_model=List[MyReservationResponse])
def my_reservations(member: Member = Depends(get_current_member), session: Session = Depends(get_session)):
    """The caller's reservations with schedule info, latest play date first."""
    rows = session.exec(
        select(Reservation, Schedule, GolfCourse)
        .join(Schedule, Reservation.schedule_id == Schedule.id)
        .join(GolfCourse, Schedule.golf_course_id == GolfCourse.id, isouter=True)
        .where(Reservation.member_id == member.id)
    ).all()

    result = []
    for reservation, schedule, course in rows:
        item = MyReservationResponse.model_validate(reservation)
        item.play_date = schedule.play_date
        item.tee_times = schedule_tee_times(schedule)
        item.schedule_status = schedule.status
        item.course_name = course.name if course else None
        item.location = course.location if course else None
        result.append(item)
    result.sort(key=lambda r: (r.play_date or date.min, r.id), reverse=True)
    return result


# ============================================================================
# Admin Endpoints
# ============================================================================


@router.get("/admin/schedules/{schedule_id}/reservations", response_model=List[RankedReservationResponse])
def admin_list_reservations(
    schedule_id: int,
    admin: Member = Depends(require_admin),
    session: Session = Depends(get_session),
):
    """
    All reservations for a schedule in ranking order:
    1. priority ascending
    2. applied_at ascending
    3. id ascending
    """
    if not session.get(Schedule, schedule_id):
        raise HTTPException(status_code=404, detail="Schedule not found")

    rows = session.exec(
        select(Reservation, Member)
        .join(Member, Reservation.member_id == Member.id)
        .where(Reservation.schedule_id == schedule_id)
    ).all()

    def sort_key(row):
        reservation = row[0]
        return fairness_key(
            AssignmentEntry(
                reservation_id=reservation.id, priority=reservation.priority, applied_at=reservation.applied_at
            )
        )

    result = []
    for reservation, member in sorted(rows, key=sort_key):
        item = RankedReservationResponse.model_validate(reservation)
        item.member_name = member.name
        item.employee_id = member.employee_id
        item.department = member.department
        item.phone = member.phone
        result.append(item)
    return result


@router.patch("/admin/reservations/{reservation_id}/status", response_model=ReservationResponse)
def update_status(
    reservation_id: int,
    request: StatusUpdateRequest,
    background_tasks: BackgroundTasks,
    admin: Member = Depends(require_admin),
    session: Session = Depends(get_session),
):
    """Override a reservation's status (no capacity check)."""
    try:
        result = admin_set_status(session, reservation_id, request.status)
    except (ReservationError, StorageError) as e:
        raise http_error(e)

    dispatch_notices(background_tasks, session, result.notices)
    return session.get(Reservation, reservation_id)


@router.post("/admin/schedules/{schedule_id}/book-for", response_model=ReservationResponse, status_code=201)
def book_for(
    schedule_id: int,
    request: BookForRequest,
    background_tasks: BackgroundTasks,
    admin: Member = Depends(require_admin),
    session: Session = Depends(get_session),
):
    """Book a member directly as confirmed."""
    try:
        result = admin_book_for(session, schedule_id, request.member_id)
    except (ReservationError, StorageError) as e:
        raise http_error(e)

    dispatch_notices(background_tasks, session, result.notices)
    return session.get(Reservation, result.reservation_id)


@router.delete("/admin/reservations/{reservation_id}", response_model=CancelResponse)
def soft_delete(
    reservation_id: int,
    background_tasks: BackgroundTasks,
    admin: Member = Depends(require_admin),
    session: Session = Depends(get_session),
):
    """Mark a reservation deleted; a freed seat promotes the earliest waitlist applicant."""
    try:
        result = admin_delete(session, reservation_id)
    except (ReservationError, StorageError) as e:
        raise http_error(e)

    dispatch_notices(background_tasks, session, result.notices)
    return CancelResponse(
        reservation_id=reservation_id,
        previous_status=result.previous_status.value,
        promoted_member_id=result.promoted_member_id,
    )


@router.delete("/admin/reservations/{reservation_id}/hard", status_code=204)
def hard_delete(
    reservation_id: int,
    admin: Member = Depends(require_admin),
    session: Session = Depends(get_session),
):
    """Physically remove a reservation. No waitlist promotion."""
    try:
        admin_hard_delete(session, reservation_id)
    except (ReservationError, StorageError) as e:
        raise http_error(e)
    return None


@router.post("/admin/schedules/{schedule_id}/assign-teams", response_model=AssignTeamsResponse)
def assign(
    schedule_id: int,
    admin: Member = Depends(require_admin),
    session: Session = Depends(get_session),
):
    """
    Seat pending/confirmed reservations into tee-time teams.

    Preferred tee-times are honoured first (4 per team); the rest spill into
    the next team with room. The first max_members by priority/applied_at are
    confirmed, the remainder waitlisted.
    """
    try:
        result = assign_teams(session, schedule_id)
    except (ReservationError, StorageError) as e:
        raise http_error(e)
    return AssignTeamsResponse(**result.to_dict())


@router.post("/admin/reservations/{reservation_id}/swap", response_model=SwapResponse)
def swap(
    reservation_id: int,
    request: SwapRequest,
    admin: Member = Depends(require_admin),
    session: Session = Depends(get_session),
):
    """Exchange teams with another reservation on the same schedule."""
    try:
        first, second = swap_teams(session, reservation_id, request.partner_reservation_id, request.from_team)
    except (ReservationError, StorageError) as e:
        raise http_error(e)
    return SwapResponse(
        reservation=ReservationResponse.model_validate(first),
        partner=ReservationResponse.model_validate(second),
    )


@router.post("/admin/reservations/{reservation_id}/revert-swap", response_model=SwapResponse)
def revert(
    reservation_id: int,
    admin: Member = Depends(require_admin),
    session: Session = Depends(get_session),
):
    """Restore both sides of a recorded team swap."""
    try:
        first, second = revert_swap(session, reservation_id)
    except (ReservationError, StorageError) as e:
        raise http_error(e)
    return SwapResponse(
        reservation=ReservationResponse.model_validate(first),
        partner=ReservationResponse.model_validate(second) if second else None,
    )


@router.post("/admin/reservations/{reservation_id}/score", response_model=ScoreResponse)
def set_score(
    reservation_id: int,
    request: ScoreRequest,
    admin: Member = Depends(require_admin),
    session: Session = Depends(get_session),
):
    """Record the strokes played (50-200) and refresh the member's average."""
    try:
        member = record_score(session, reservation_id, request.score)
    except (ReservationError, StorageError) as e:
        raise http_error(e)
    return ScoreResponse(
        reservation_id=reservation_id,
        score=request.score,
        member_id=member.id,
        avg_score=member.avg_score,
        recent_score=member.recent_score,
    )
