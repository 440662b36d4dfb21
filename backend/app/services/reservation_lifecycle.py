"""
Reservation lifecycle: apply, cancel, waitlist promotion and admin overrides.

Rules:
1. **One live reservation** per (schedule, member). Cancelled/deleted rows are history.
2. **Capacity**: pending + confirmed count against max_members; past it, new
   applications land on the waitlist.
3. **Promotion**: freeing a seat promotes the earliest-applied waitlist
   reservation to pending (one per freed seat).
4. **Priority**: 1 when the member was confirmed on the venue's previous
   schedule, else 0. Only used as a tie-break by team assignment.

Every decision re-reads storage (RecordStore.refresh_cache) while holding the
schedule's lock; the partial unique index on Reservation backs up the duplicate
check across processes.

Notices produced by an operation are returned to the caller, who delivers them
after responding (see notification_service.deliver_notices).
"""

import logging
import math
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterator, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from app.models.golf_course import DEFAULT_MAX_MEMBERS, GolfCourse
from app.models.member import Member
from app.models.reservation import ACTIVE_STATUSES, SEATED_STATUSES, Reservation, ReservationStatus
from app.models.schedule import Schedule, ScheduleStatus
from app.services.notification_service import Notice
from app.services.record_store import RecordStore
from app.services.reservation_errors import (
    CompletedSchedule,
    DuplicateReservation,
    Forbidden,
    InvalidSchedule,
    InvalidStatus,
    NotFound,
)
from app.services.schedule_service import schedule_tee_times

logger = logging.getLogger(__name__)

# Fraction of capacity at which current holders hear the schedule is filling up
ALMOST_FULL_RATIO = 0.8

_schedule_locks: Dict[int, threading.RLock] = {}
_registry_lock = threading.Lock()


@contextmanager
def schedule_lock(schedule_id: int) -> Iterator[None]:
    """Serialize reservation mutations for one schedule within this process."""
    with _registry_lock:
        lock = _schedule_locks.setdefault(schedule_id, threading.RLock())
    with lock:
        yield


@dataclass
class ApplyResult:
    reservation_id: int
    status: ReservationStatus
    position: int
    priority: int
    notices: List[Notice] = field(default_factory=list)


@dataclass
class CancelResult:
    reservation_id: int
    previous_status: ReservationStatus
    promoted_member_id: Optional[int] = None
    promoted_reservation_id: Optional[int] = None
    notices: List[Notice] = field(default_factory=list)


@dataclass
class AdminResult:
    reservation_id: int
    status: Optional[ReservationStatus] = None
    notices: List[Notice] = field(default_factory=list)


def schedule_capacity(store: RecordStore, schedule: Schedule) -> int:
    """max_members of the schedule, else the venue's, else 12."""
    if schedule.max_members:
        return schedule.max_members
    course = store.find_by_id(GolfCourse, schedule.golf_course_id)
    if course and course.max_members:
        return course.max_members
    return DEFAULT_MAX_MEMBERS


def count_seated(store: RecordStore, schedule_id: int) -> int:
    return len(store.get_table(Reservation, schedule_id=schedule_id, status=SEATED_STATUSES))


def find_active_reservation(store: RecordStore, schedule_id: int, member_id: int) -> Optional[Reservation]:
    rows = store.get_table(Reservation, schedule_id=schedule_id, member_id=member_id, status=ACTIVE_STATUSES)
    return rows[0] if rows else None


def compute_priority(store: RecordStore, schedule: Schedule, member_id: int) -> Tuple[int, int]:
    """
    (priority, consecutive_count) for a member applying to `schedule`.

    Looks only at the venue's immediately preceding schedule.
    """
    previous = store.session.exec(
        select(Schedule)
        .where(Schedule.golf_course_id == schedule.golf_course_id, Schedule.play_date < schedule.play_date)
        .order_by(Schedule.play_date.desc())
    ).first()
    if previous is None:
        return 0, 0

    played = store.get_table(
        Reservation, schedule_id=previous.id, member_id=member_id, status=ReservationStatus.confirmed
    )
    if played:
        return 1, 1
    return 0, 0


def _load_fresh(store: RecordStore, reservation_id: int) -> Reservation:
    store.refresh_cache(Reservation)
    store.refresh_cache(Schedule)
    reservation = store.find_by_id(Reservation, reservation_id)
    if not reservation:
        raise NotFound(f"Reservation {reservation_id} not found")
    return reservation


def apply_for_schedule(
    session: Session,
    member: Member,
    schedule_id: int,
    preferred_tee_time: Optional[str] = None,
) -> ApplyResult:
    """
    Queue a member on a schedule.

    Returns pending while seats remain, waitlist otherwise. `position` is the
    1-based place in the queue (seated count before this application + 1).
    """
    if member.is_admin:
        raise Forbidden("Administrator accounts cannot apply for reservations")

    store = RecordStore(session)
    with schedule_lock(schedule_id):
        store.refresh_cache(Schedule)
        store.refresh_cache(Reservation)

        schedule = store.find_by_id(Schedule, schedule_id)
        if not schedule:
            raise InvalidSchedule(f"Schedule {schedule_id} not found")
        if schedule.status != ScheduleStatus.open:
            raise InvalidSchedule(f"Schedule {schedule_id} is not open for applications (status '{schedule.status}')")

        if preferred_tee_time is not None:
            preferred_tee_time = preferred_tee_time.strip() or None
        if preferred_tee_time and preferred_tee_time not in schedule_tee_times(schedule):
            raise InvalidSchedule(
                f"Preferred tee-time '{preferred_tee_time}' is not one of the schedule's tee-times "
                f"({', '.join(schedule_tee_times(schedule))})"
            )

        if find_active_reservation(store, schedule_id, member.id):
            raise DuplicateReservation(f"Member {member.id} already has a reservation for schedule {schedule_id}")

        priority, consecutive_count = compute_priority(store, schedule, member.id)
        max_members = schedule_capacity(store, schedule)
        seated = count_seated(store, schedule_id)
        status = ReservationStatus.waitlist if seated >= max_members else ReservationStatus.pending

        reservation = Reservation(
            schedule_id=schedule_id,
            member_id=member.id,
            status=status,
            priority=priority,
            consecutive_count=consecutive_count,
            preferred_tee_time=preferred_tee_time,
            applied_at=datetime.utcnow(),
        )
        try:
            reservation_id = store.insert(reservation)
        except IntegrityError:
            raise DuplicateReservation(f"Member {member.id} already has a reservation for schedule {schedule_id}")

        result = ApplyResult(reservation_id=reservation_id, status=status, position=seated + 1, priority=priority)
        logger.info(
            f"Reservation {reservation_id}: member {member.id} applied to schedule {schedule_id} "
            f"-> {status.value} (position {result.position}/{max_members}, priority {priority})"
        )

        if status == ReservationStatus.pending and seated + 1 == math.floor(max_members * ALMOST_FULL_RATIO):
            holders = [
                r.member_id
                for r in store.get_table(Reservation, schedule_id=schedule_id, status=ACTIVE_STATUSES)
                if r.member_id != member.id
            ]
            if holders:
                result.notices.append(
                    Notice(
                        member_ids=holders,
                        title="Reservation almost full",
                        body=f"{schedule.play_date} schedule has {seated + 1} of {max_members} seats taken.",
                        url=f"/schedules/{schedule_id}",
                        type="reservation",
                    )
                )
        return result


def promote_from_waitlist(store: RecordStore, schedule_id: int) -> Optional[Reservation]:
    """
    Promote the earliest-applied waitlist reservation to pending if a seat is free.

    Caller must hold schedule_lock(schedule_id).
    """
    store.refresh_cache(Reservation)
    schedule = store.find_by_id(Schedule, schedule_id)
    if schedule is None:
        return None
    if count_seated(store, schedule_id) >= schedule_capacity(store, schedule):
        return None

    waiting = store.get_table(Reservation, schedule_id=schedule_id, status=ReservationStatus.waitlist)
    if not waiting:
        return None
    candidate = min(waiting, key=lambda r: (r.applied_at or datetime.max, r.id))
    store.update(Reservation, candidate.id, status=ReservationStatus.pending)
    logger.info(f"Reservation {candidate.id}: member {candidate.member_id} promoted from waitlist on schedule {schedule_id}")
    return candidate


def _release_seat(store: RecordStore, reservation: Reservation, new_status: ReservationStatus, result: CancelResult) -> None:
    previous = reservation.status
    store.update(Reservation, reservation.id, status=new_status)
    if previous not in SEATED_STATUSES:
        return
    promoted = promote_from_waitlist(store, reservation.schedule_id)
    if promoted is None:
        return
    result.promoted_member_id = promoted.member_id
    result.promoted_reservation_id = promoted.id
    result.notices.append(
        Notice(
            member_ids=[promoted.member_id],
            title="Promoted from waitlist",
            body="A seat opened up and your reservation moved off the waitlist.",
            url=f"/schedules/{reservation.schedule_id}",
            type="waitlist",
        )
    )


def cancel_reservation(session: Session, member: Member, reservation_id: int) -> CancelResult:
    """Member (or admin on their behalf) cancels a reservation."""
    store = RecordStore(session)
    reservation = _load_fresh(store, reservation_id)

    with schedule_lock(reservation.schedule_id):
        reservation = _load_fresh(store, reservation_id)
        if reservation.member_id != member.id and not member.is_admin:
            raise Forbidden(f"Reservation {reservation_id} belongs to another member")

        schedule = store.find_by_id(Schedule, reservation.schedule_id)
        if schedule and schedule.status == ScheduleStatus.completed:
            raise CompletedSchedule("Reservations for a completed schedule cannot be cancelled")
        if reservation.status not in ACTIVE_STATUSES:
            raise NotFound(f"Reservation {reservation_id} is already {reservation.status}")

        result = CancelResult(reservation_id=reservation_id, previous_status=ReservationStatus(reservation.status))
        _release_seat(store, reservation, ReservationStatus.cancelled, result)
        logger.info(f"Reservation {reservation_id}: cancelled by member {member.id} (was {result.previous_status.value})")
        return result


def admin_set_status(session: Session, reservation_id: int, new_status: str) -> AdminResult:
    """Unconditional status override; no capacity check and no promotion."""
    try:
        status = ReservationStatus(new_status)
    except ValueError:
        allowed = ", ".join(s.value for s in ReservationStatus)
        raise InvalidStatus(f"Status '{new_status}' is not one of: {allowed}")

    store = RecordStore(session)
    reservation = _load_fresh(store, reservation_id)
    with schedule_lock(reservation.schedule_id):
        reservation = _load_fresh(store, reservation_id)
        previous = reservation.status
        try:
            store.update(Reservation, reservation_id, status=status)
        except IntegrityError:
            raise DuplicateReservation(
                f"Member {reservation.member_id} already has another active reservation for schedule {reservation.schedule_id}"
            )

        result = AdminResult(reservation_id=reservation_id, status=status)
        if status == ReservationStatus.confirmed:
            result.notices.append(
                Notice(
                    member_ids=[reservation.member_id],
                    title="Reservation confirmed",
                    body="Your reservation has been confirmed.",
                    url=f"/schedules/{reservation.schedule_id}",
                    type="reservation",
                )
            )
        logger.info(f"Reservation {reservation_id}: admin override {previous} -> {status.value}")
        return result


def admin_delete(session: Session, reservation_id: int) -> CancelResult:
    """Soft delete (status=deleted) with the same promotion rule as cancel."""
    store = RecordStore(session)
    reservation = _load_fresh(store, reservation_id)
    with schedule_lock(reservation.schedule_id):
        reservation = _load_fresh(store, reservation_id)
        if reservation.status == ReservationStatus.deleted:
            raise NotFound(f"Reservation {reservation_id} is already deleted")
        result = CancelResult(reservation_id=reservation_id, previous_status=ReservationStatus(reservation.status))
        _release_seat(store, reservation, ReservationStatus.deleted, result)
        logger.info(f"Reservation {reservation_id}: soft-deleted by admin (was {result.previous_status.value})")
        return result


def admin_hard_delete(session: Session, reservation_id: int) -> None:
    """Physically remove the record. No promotion."""
    store = RecordStore(session)
    schedule_id = _load_fresh(store, reservation_id).schedule_id
    with schedule_lock(schedule_id):
        if not store.delete(Reservation, reservation_id):
            raise NotFound(f"Reservation {reservation_id} not found")
    logger.warning(f"Reservation {reservation_id}: hard-deleted by admin (schedule {schedule_id})")


def admin_book_for(session: Session, schedule_id: int, member_id: int) -> AdminResult:
    """Book a member directly as confirmed, bypassing capacity and priority."""
    store = RecordStore(session)
    with schedule_lock(schedule_id):
        store.refresh_cache(Schedule)
        store.refresh_cache(Reservation)

        schedule = store.find_by_id(Schedule, schedule_id)
        if not schedule:
            raise InvalidSchedule(f"Schedule {schedule_id} not found")
        member = store.find_by_id(Member, member_id)
        if not member:
            raise NotFound(f"Member {member_id} not found")
        if find_active_reservation(store, schedule_id, member_id):
            raise DuplicateReservation(f"Member {member_id} already has a reservation for schedule {schedule_id}")

        try:
            reservation_id = store.insert(
                Reservation(
                    schedule_id=schedule_id,
                    member_id=member_id,
                    status=ReservationStatus.confirmed,
                    applied_at=datetime.utcnow(),
                )
            )
        except IntegrityError:
            raise DuplicateReservation(f"Member {member_id} already has a reservation for schedule {schedule_id}")

        logger.info(f"Reservation {reservation_id}: admin booked member {member_id} on schedule {schedule_id}")
        return AdminResult(
            reservation_id=reservation_id,
            status=ReservationStatus.confirmed,
            notices=[
                Notice(
                    member_ids=[member_id],
                    title="Reservation confirmed",
                    body=f"You have been booked for {schedule.play_date}.",
                    url=f"/schedules/{schedule_id}",
                    type="reservation",
                )
            ],
        )
