"""
Schedule management: tee-time parsing, creation, yearly generation,
timed opening and completion.
"""

import calendar
import logging
import math
import re
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional, Tuple, Union

from sqlmodel import Session, select

from app.models.golf_course import DEFAULT_MAX_MEMBERS, GolfCourse
from app.models.reservation import Reservation
from app.models.schedule import Schedule, ScheduleStatus
from app.services.notification_service import Notice
from app.services.record_store import RecordStore
from app.services.reservation_errors import DuplicateSchedule, InvalidSchedule, NotFound, ScheduleHasReservations

logger = logging.getLogger(__name__)

DEFAULT_TEE_TIMES = ["06:00", "06:08", "06:16"]
TEE_INTERVAL_MINUTES = 8
TEAM_SIZE = 4

_TEE_TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

SATURDAY = 5  # date.weekday()


def parse_tee_times(tee_times: Optional[Union[str, List[str]]]) -> List[str]:
    """
    Normalize tee_times to an ordered list of "HH:MM" strings.

    - None or "" -> []
    - "06:00, 06:08" -> ["06:00", "06:08"]
    - ["06:00", " 06:08 "] -> ["06:00", "06:08"]

    Raises ValueError for entries that are not HH:MM or appear twice.
    """
    if tee_times is None:
        return []
    if isinstance(tee_times, str):
        parts = tee_times.split(",")
    else:
        parts = [str(x) for x in tee_times]
    result = [p.strip() for p in parts if p.strip()]
    for value in result:
        if not _TEE_TIME_RE.match(value):
            raise ValueError(f"Invalid tee-time '{value}': expected HH:MM")
    duplicates = sorted({value for value in result if result.count(value) > 1})
    if duplicates:
        raise ValueError(f"Duplicate tee-time(s): {', '.join(duplicates)}")
    return result


def schedule_tee_times(schedule: Schedule) -> List[str]:
    """Declared tee-times of a schedule, or the default three slots when unset."""
    return parse_tee_times(schedule.tee_times) or list(DEFAULT_TEE_TIMES)


def build_tee_times(start: str, max_members: int) -> List[str]:
    """Enough tee-times, TEE_INTERVAL_MINUTES apart, to seat max_members in teams of four."""
    first = datetime.strptime(start.strip(), "%H:%M")
    count = max(1, math.ceil(max_members / TEAM_SIZE))
    return [(first + timedelta(minutes=TEE_INTERVAL_MINUTES * i)).strftime("%H:%M") for i in range(count)]


def nth_weekday(year: int, month: int, week_number: int, weekday: int = SATURDAY) -> Optional[date]:
    """The week_number-th `weekday` of the month, or None when the month has fewer."""
    first = date(year, month, 1)
    day = 1 + (weekday - first.weekday()) % 7 + (week_number - 1) * 7
    if day > calendar.monthrange(year, month)[1]:
        return None
    return date(year, month, day)


def create_schedule(
    session: Session,
    golf_course_id: int,
    play_date: date,
    tee_times: Optional[Union[str, List[str]]] = None,
    max_members: Optional[int] = None,
    status: ScheduleStatus = ScheduleStatus.open,
    open_at: Optional[datetime] = None,
    notes: Optional[str] = None,
) -> Schedule:
    store = RecordStore(session)
    course = store.find_by_id(GolfCourse, golf_course_id)
    if not course:
        raise NotFound(f"Golf course {golf_course_id} not found")

    store.refresh_cache(Schedule)
    if store.get_table(Schedule, golf_course_id=golf_course_id, play_date=play_date):
        raise DuplicateSchedule(f"{course.name} already has a schedule on {play_date}")

    try:
        parsed = parse_tee_times(tee_times)
    except ValueError as e:
        raise InvalidSchedule(str(e))
    capacity = max_members or course.max_members or DEFAULT_MAX_MEMBERS

    schedule = Schedule(
        golf_course_id=golf_course_id,
        play_date=play_date,
        tee_times=",".join(parsed) if parsed else None,
        max_members=capacity,
        status=status,
        open_at=open_at,
        notes=notes,
    )
    store.insert(schedule)
    logger.info(f"Schedule {schedule.id}: created for course {golf_course_id} on {play_date}")
    return schedule


def generate_yearly_schedules(session: Session, year: int, golf_course_ids: Iterable[int]) -> int:
    """
    Create one schedule per month for each course, on its schedule_week-th Saturday.

    Existing (course, date) schedules and months without that Saturday are skipped.
    Returns the number of schedules created.
    """
    store = RecordStore(session)
    store.refresh_cache(Schedule)
    created = 0
    for course_id in golf_course_ids:
        course = store.find_by_id(GolfCourse, course_id)
        if not course:
            raise NotFound(f"Golf course {course_id} not found")

        tee_times = ",".join(build_tee_times(course.tee_time_start or DEFAULT_TEE_TIMES[0], course.max_members))
        for month in range(1, 13):
            play_date = nth_weekday(year, month, course.schedule_week or 1)
            if play_date is None:
                continue
            if store.get_table(Schedule, golf_course_id=course.id, play_date=play_date):
                continue
            store.insert(
                Schedule(
                    golf_course_id=course.id,
                    play_date=play_date,
                    tee_times=tee_times,
                    max_members=course.max_members or DEFAULT_MAX_MEMBERS,
                    status=ScheduleStatus.open,
                )
            )
            created += 1

    logger.info(f"Generated {created} schedules for {year}")
    return created


def open_due_schedules(session: Session, now: Optional[datetime] = None) -> Tuple[int, List[Notice]]:
    """
    Open every pending schedule whose open_at has passed.

    Returns the number opened and one broadcast notice listing them (no notice when none opened).
    """
    now = now or datetime.utcnow()
    due = session.exec(
        select(Schedule).where(
            Schedule.status == ScheduleStatus.pending.value,
            Schedule.open_at != None,  # noqa: E711
            Schedule.open_at <= now,
        )
    ).all()
    if not due:
        return 0, []

    store = RecordStore(session)
    opened = []
    for schedule in due:
        course = store.find_by_id(GolfCourse, schedule.golf_course_id)
        opened.append(f"{schedule.play_date} {course.name if course else ''}".strip())
        store.update(Schedule, schedule.id, status=ScheduleStatus.open)

    logger.info(f"Opened {len(opened)} schedules: {', '.join(opened)}")
    return len(opened), [
        Notice(
            member_ids=[],
            broadcast=True,
            title="Reservations open",
            body=f"Reservations are now open: {', '.join(opened)}",
            url="/reservations/available",
            type="schedule",
        )
    ]


def complete_schedule(session: Session, schedule_id: int) -> Schedule:
    store = RecordStore(session)
    if not store.update(Schedule, schedule_id, status=ScheduleStatus.completed):
        raise NotFound(f"Schedule {schedule_id} not found")
    logger.info(f"Schedule {schedule_id}: completed")
    return store.find_by_id(Schedule, schedule_id)


def delete_schedule(session: Session, schedule_id: int) -> None:
    """Delete a schedule that has never had a reservation of any status."""
    store = RecordStore(session)
    store.refresh_cache(Reservation)
    if not store.find_by_id(Schedule, schedule_id):
        raise NotFound(f"Schedule {schedule_id} not found")
    if store.get_table(Reservation, schedule_id=schedule_id):
        raise ScheduleHasReservations(f"Schedule {schedule_id} has reservations and cannot be deleted")
    store.delete(Schedule, schedule_id)
    logger.info(f"Schedule {schedule_id}: deleted")
