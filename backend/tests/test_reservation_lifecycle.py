import threading
from datetime import date, timedelta

import pytest
from sqlmodel import Session, SQLModel, create_engine, select

from app.models.member import Member
from app.models.reservation import SEATED_STATUSES, Reservation, ReservationStatus
from app.models.schedule import ScheduleStatus
from app.services.reservation_errors import (
    CompletedSchedule,
    DuplicateReservation,
    Forbidden,
    InvalidSchedule,
    InvalidStatus,
    NotFound,
)
from app.services.reservation_lifecycle import (
    admin_book_for,
    admin_delete,
    admin_hard_delete,
    admin_set_status,
    apply_for_schedule,
    cancel_reservation,
    compute_priority,
)
from app.services.record_store import RecordStore
from tests.factories import make_course, make_member, make_members, make_reservation, make_schedule


@pytest.fixture(name="course")
def course_fixture(session: Session):
    return make_course(session)


@pytest.fixture(name="schedule")
def schedule_fixture(session: Session, course):
    return make_schedule(session, course)


def fill(session: Session, schedule, count: int, status=ReservationStatus.pending, start: int = 0):
    members = make_members(session, count, prefix=f"Filler {start}")
    return [
        make_reservation(session, schedule, m, status=status, minutes=start + i) for i, m in enumerate(members)
    ]


def status_of(session: Session, reservation_id: int) -> str:
    session.expire_all()
    return session.get(Reservation, reservation_id).status


# ============================================================================
# Apply
# ============================================================================


def test_first_application_is_pending_at_position_one(session: Session, schedule):
    member = make_member(session, "Kim")

    result = apply_for_schedule(session, member, schedule.id)

    assert result.status == ReservationStatus.pending
    assert result.position == 1
    assert result.priority == 0
    assert status_of(session, result.reservation_id) == ReservationStatus.pending


def test_second_application_is_duplicate(session: Session, schedule):
    member = make_member(session, "Kim")
    apply_for_schedule(session, member, schedule.id)

    with pytest.raises(DuplicateReservation):
        apply_for_schedule(session, member, schedule.id)


def test_full_schedule_waitlists_at_position_thirteen(session: Session, schedule):
    fill(session, schedule, 12)
    member = make_member(session, "Late")

    result = apply_for_schedule(session, member, schedule.id)

    assert result.status == ReservationStatus.waitlist
    assert result.position == 13


def test_confirmed_rows_count_against_capacity(session: Session, schedule):
    fill(session, schedule, 6, status=ReservationStatus.confirmed)
    fill(session, schedule, 6, start=100)

    result = apply_for_schedule(session, make_member(session, "Late"), schedule.id)

    assert result.status == ReservationStatus.waitlist


def test_reapply_after_cancel_is_allowed(session: Session, schedule):
    member = make_member(session, "Kim")
    first = apply_for_schedule(session, member, schedule.id)
    cancel_reservation(session, member, first.reservation_id)

    second = apply_for_schedule(session, member, schedule.id)

    assert second.reservation_id != first.reservation_id
    assert second.status == ReservationStatus.pending


def test_admin_cannot_apply(session: Session, schedule):
    admin = make_member(session, "Admin", is_admin=True)
    with pytest.raises(Forbidden):
        apply_for_schedule(session, admin, schedule.id)


def test_apply_to_missing_schedule(session: Session):
    member = make_member(session, "Kim")
    with pytest.raises(InvalidSchedule):
        apply_for_schedule(session, member, 404)


@pytest.mark.parametrize("status", [ScheduleStatus.pending, ScheduleStatus.closed, ScheduleStatus.completed])
def test_apply_to_schedule_not_open(session: Session, course, status):
    schedule = make_schedule(session, course, status=status)
    with pytest.raises(InvalidSchedule):
        apply_for_schedule(session, make_member(session, "Kim"), schedule.id)


def test_preferred_tee_time_must_be_declared(session: Session, schedule):
    member = make_member(session, "Kim")
    with pytest.raises(InvalidSchedule):
        apply_for_schedule(session, member, schedule.id, preferred_tee_time="07:00")

    result = apply_for_schedule(session, member, schedule.id, preferred_tee_time=" 06:08 ")
    session.expire_all()
    assert session.get(Reservation, result.reservation_id).preferred_tee_time == "06:08"


def test_priority_set_when_confirmed_on_previous_schedule(session: Session, course):
    previous = make_schedule(session, course, play_date=date.today() + timedelta(days=1))
    upcoming = make_schedule(session, course, play_date=date.today() + timedelta(days=29))
    regular, newcomer = make_members(session, 2)
    make_reservation(session, previous, regular, status=ReservationStatus.confirmed)

    assert compute_priority(RecordStore(session), upcoming, regular.id) == (1, 1)
    assert compute_priority(RecordStore(session), upcoming, newcomer.id) == (0, 0)
    assert apply_for_schedule(session, regular, upcoming.id).priority == 1


def test_priority_ignores_other_venues(session: Session, course):
    other_course = make_course(session, "Hillside GC")
    make_schedule(session, other_course, play_date=date.today() + timedelta(days=1))
    upcoming = make_schedule(session, course, play_date=date.today() + timedelta(days=29))
    member = make_member(session, "Kim")

    assert compute_priority(RecordStore(session), upcoming, member.id) == (0, 0)


def test_almost_full_notice_goes_to_other_holders(session: Session, schedule):
    holders = fill(session, schedule, 7)

    # 8 of 12 is below floor(12 * 0.8)
    eighth = apply_for_schedule(session, make_member(session, "Eighth"), schedule.id)
    assert eighth.notices == []

    ninth = apply_for_schedule(session, make_member(session, "Ninth"), schedule.id)
    assert len(ninth.notices) == 1
    notice = ninth.notices[0]
    expected = {r.member_id for r in holders}
    expected.add(session.get(Reservation, eighth.reservation_id).member_id)
    assert set(notice.member_ids) == expected

    tenth = apply_for_schedule(session, make_member(session, "Tenth"), schedule.id)
    assert tenth.notices == []


# ============================================================================
# Cancel and promotion
# ============================================================================


def test_cancel_confirmed_promotes_earliest_waitlist(session: Session, schedule):
    seated = fill(session, schedule, 12, status=ReservationStatus.confirmed)
    later = make_reservation(session, schedule, make_member(session, "Later"), ReservationStatus.waitlist, minutes=50)
    earliest = make_reservation(
        session, schedule, make_member(session, "Earliest"), ReservationStatus.waitlist, minutes=40
    )
    owner = session.get(Member, seated[0].member_id)

    result = cancel_reservation(session, owner, seated[0].id)

    assert result.previous_status == ReservationStatus.confirmed
    assert result.promoted_reservation_id == earliest.id
    assert status_of(session, earliest.id) == ReservationStatus.pending
    assert status_of(session, later.id) == ReservationStatus.waitlist
    assert status_of(session, seated[0].id) == ReservationStatus.cancelled
    assert result.notices[0].member_ids == [earliest.member_id]


def test_cancel_waitlist_promotes_nobody(session: Session, schedule):
    fill(session, schedule, 12)
    member = make_member(session, "Waiting")
    waiting = make_reservation(session, schedule, member, ReservationStatus.waitlist, minutes=60)
    other = make_reservation(session, schedule, make_member(session, "Other"), ReservationStatus.waitlist, minutes=61)

    result = cancel_reservation(session, member, waiting.id)

    assert result.promoted_reservation_id is None
    assert status_of(session, other.id) == ReservationStatus.waitlist


def test_cancel_without_waitlist(session: Session, schedule):
    member = make_member(session, "Kim")
    applied = apply_for_schedule(session, member, schedule.id)

    result = cancel_reservation(session, member, applied.reservation_id)

    assert result.promoted_member_id is None
    assert result.notices == []


def test_cancel_other_members_reservation_forbidden(session: Session, schedule):
    owner, stranger = make_members(session, 2)
    reservation = make_reservation(session, schedule, owner)

    with pytest.raises(Forbidden):
        cancel_reservation(session, stranger, reservation.id)


def test_admin_may_cancel_for_member(session: Session, schedule):
    owner = make_member(session, "Owner")
    admin = make_member(session, "Admin", is_admin=True)
    reservation = make_reservation(session, schedule, owner)

    cancel_reservation(session, admin, reservation.id)

    assert status_of(session, reservation.id) == ReservationStatus.cancelled


def test_cancel_on_completed_schedule(session: Session, course):
    schedule = make_schedule(session, course, status=ScheduleStatus.completed)
    member = make_member(session, "Kim")
    reservation = make_reservation(session, schedule, member, ReservationStatus.confirmed)

    with pytest.raises(CompletedSchedule):
        cancel_reservation(session, member, reservation.id)


def test_cancel_twice_is_not_found(session: Session, schedule):
    member = make_member(session, "Kim")
    reservation = make_reservation(session, schedule, member)
    cancel_reservation(session, member, reservation.id)

    with pytest.raises(NotFound):
        cancel_reservation(session, member, reservation.id)


def test_cancel_missing_reservation(session: Session):
    with pytest.raises(NotFound):
        cancel_reservation(session, make_member(session, "Kim"), 999)


# ============================================================================
# Admin overrides
# ============================================================================


def test_admin_set_status_skips_capacity(session: Session, schedule):
    fill(session, schedule, 12, status=ReservationStatus.confirmed)
    waiting = make_reservation(session, schedule, make_member(session, "W"), ReservationStatus.waitlist, minutes=99)

    result = admin_set_status(session, waiting.id, "confirmed")

    assert result.status == ReservationStatus.confirmed
    assert status_of(session, waiting.id) == ReservationStatus.confirmed
    assert len(result.notices) == 1


def test_admin_set_status_rejects_unknown_value(session: Session, schedule):
    reservation = make_reservation(session, schedule, make_member(session, "Kim"))
    with pytest.raises(InvalidStatus):
        admin_set_status(session, reservation.id, "approved")


def test_admin_set_status_cannot_revive_into_duplicate(session: Session, schedule):
    member = make_member(session, "Kim")
    old = make_reservation(session, schedule, member, ReservationStatus.cancelled)
    make_reservation(session, schedule, member, minutes=5)

    with pytest.raises(DuplicateReservation):
        admin_set_status(session, old.id, "pending")


def test_admin_delete_is_soft_and_promotes(session: Session, schedule):
    seated = fill(session, schedule, 12)
    waiting = make_reservation(session, schedule, make_member(session, "W"), ReservationStatus.waitlist, minutes=99)

    result = admin_delete(session, seated[3].id)

    assert status_of(session, seated[3].id) == ReservationStatus.deleted
    assert result.promoted_reservation_id == waiting.id

    with pytest.raises(NotFound):
        admin_delete(session, seated[3].id)


def test_admin_hard_delete_removes_row_without_promotion(session: Session, schedule):
    seated = fill(session, schedule, 12)
    waiting = make_reservation(session, schedule, make_member(session, "W"), ReservationStatus.waitlist, minutes=99)

    admin_hard_delete(session, seated[0].id)

    session.expire_all()
    assert session.get(Reservation, seated[0].id) is None
    assert status_of(session, waiting.id) == ReservationStatus.waitlist

    with pytest.raises(NotFound):
        admin_hard_delete(session, seated[0].id)


def test_admin_book_for_ignores_capacity(session: Session, schedule):
    fill(session, schedule, 12)
    member = make_member(session, "Guest")

    result = admin_book_for(session, schedule.id, member.id)

    assert result.status == ReservationStatus.confirmed
    assert status_of(session, result.reservation_id) == ReservationStatus.confirmed
    with pytest.raises(DuplicateReservation):
        admin_book_for(session, schedule.id, member.id)


def test_admin_book_for_missing_records(session: Session, schedule):
    with pytest.raises(NotFound):
        admin_book_for(session, schedule.id, 999)
    with pytest.raises(InvalidSchedule):
        admin_book_for(session, 999, make_member(session, "Kim").id)


# ============================================================================
# Concurrency
# ============================================================================


def test_unique_index_rejects_duplicate_behind_the_check(session: Session, schedule, monkeypatch):
    member = make_member(session, "Kim")
    make_reservation(session, schedule, member, ReservationStatus.waitlist)
    # Simulate another process inserting between the duplicate check and the insert
    monkeypatch.setattr("app.services.reservation_lifecycle.find_active_reservation", lambda *args: None)

    with pytest.raises(DuplicateReservation):
        apply_for_schedule(session, member, schedule.id)
    with pytest.raises(DuplicateReservation):
        admin_book_for(session, schedule.id, member.id)

    session.expire_all()
    rows = session.exec(select(Reservation).where(Reservation.member_id == member.id)).all()
    assert len(rows) == 1


@pytest.fixture(name="file_engine")
def file_engine_fixture(tmp_path):
    """File-backed SQLite so each thread gets its own connection"""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'concurrency.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


def _apply_in_threads(engine, member_ids, schedule_id):
    barrier = threading.Barrier(len(member_ids))
    outcomes = []

    def worker(member_id):
        with Session(engine) as session:
            member = session.get(Member, member_id)
            barrier.wait()
            try:
                outcomes.append(apply_for_schedule(session, member, schedule_id).status)
            except DuplicateReservation:
                outcomes.append("duplicate")

    threads = [threading.Thread(target=worker, args=(member_id,)) for member_id in member_ids]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)
    return outcomes


def test_concurrent_duplicate_applies_create_one_row(file_engine):
    with Session(file_engine) as session:
        schedule = make_schedule(session, make_course(session))
        member = make_member(session, "Kim")
        schedule_id, member_id = schedule.id, member.id

    outcomes = _apply_in_threads(file_engine, [member_id, member_id], schedule_id)

    assert sorted(outcomes, key=str) == sorted([ReservationStatus.pending, "duplicate"], key=str)
    with Session(file_engine) as session:
        rows = session.exec(select(Reservation).where(Reservation.schedule_id == schedule_id)).all()
        assert len(rows) == 1


def test_concurrent_applies_at_capacity_boundary(file_engine):
    with Session(file_engine) as session:
        schedule = make_schedule(session, make_course(session))
        fill(session, schedule, 11)
        first, second = make_members(session, 2, prefix="Racer")
        schedule_id, member_ids = schedule.id, [first.id, second.id]

    outcomes = _apply_in_threads(file_engine, member_ids, schedule_id)

    assert sorted(outcomes) == [ReservationStatus.pending, ReservationStatus.waitlist]
    with Session(file_engine) as session:
        seated = session.exec(
            select(Reservation).where(
                Reservation.schedule_id == schedule_id,
                Reservation.status.in_([s.value for s in SEATED_STATUSES]),
            )
        ).all()
        assert len(seated) == 12
