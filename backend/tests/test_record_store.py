from datetime import datetime

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlmodel import Session

from app.models.member import Member
from app.models.reservation import Reservation, ReservationStatus
from app.services.record_store import RecordStore, StorageError
from tests.factories import make_course, make_member, make_reservation, make_schedule


def test_insert_stamps_and_returns_id(session: Session):
    store = RecordStore(session)
    course = make_course(session)
    schedule = make_schedule(session, course)
    member = make_member(session, "Kim")

    reservation_id = store.insert(Reservation(schedule_id=schedule.id, member_id=member.id))

    row = store.find_by_id(Reservation, reservation_id)
    assert row.created_at is not None
    assert row.created_at == row.updated_at


def test_naive_utc_timestamps_round_trip(session: Session):
    store = RecordStore(session)
    schedule = make_schedule(session, make_course(session))
    applied_at = datetime(2026, 3, 1, 9, 30, 15)

    reservation_id = store.insert(
        Reservation(schedule_id=schedule.id, member_id=make_member(session, "Kim").id, applied_at=applied_at)
    )
    session.expire_all()

    row = store.find_by_id(Reservation, reservation_id)
    assert row.applied_at == applied_at
    assert row.applied_at.tzinfo is None
    assert row.updated_at.tzinfo is None


def test_get_table_filters_enums_and_sequences(session: Session):
    store = RecordStore(session)
    schedule = make_schedule(session, make_course(session))
    a, b, c = (make_member(session, name) for name in ("A", "B", "C"))
    make_reservation(session, schedule, a, ReservationStatus.pending)
    make_reservation(session, schedule, b, ReservationStatus.waitlist)
    make_reservation(session, schedule, c, ReservationStatus.cancelled)

    assert len(store.get_table(Reservation, schedule_id=schedule.id, status=ReservationStatus.waitlist)) == 1
    seated_or_waiting = store.get_table(
        Reservation,
        order_by=Reservation.id,
        schedule_id=schedule.id,
        status=(ReservationStatus.pending, ReservationStatus.waitlist),
    )
    assert [r.member_id for r in seated_or_waiting] == [a.id, b.id]


def test_update_and_delete_report_missing(session: Session):
    store = RecordStore(session)
    assert store.update(Member, 999, name="x") is False
    assert store.delete(Member, 999) is False

    member = make_member(session, "Kim")
    assert store.update(Member, member.id, department="Sales") is True
    assert store.find_by_id(Member, member.id).department == "Sales"


def test_refresh_cache_sees_writes_from_other_sessions(session: Session):
    from tests.conftest import test_engine

    store = RecordStore(session)
    member = make_member(session, "Kim")
    assert store.find_by_id(Member, member.id).name == "Kim"

    with Session(test_engine) as other:
        other.get(Member, member.id).name = "Park"
        other.commit()

    store.refresh_cache(Member)
    assert store.find_by_id(Member, member.id).name == "Park"


def test_unique_violation_propagates_as_integrity_error(session: Session):
    store = RecordStore(session)
    schedule = make_schedule(session, make_course(session))
    member = make_member(session, "Kim")
    make_reservation(session, schedule, member)

    with pytest.raises(IntegrityError):
        store.insert(Reservation(schedule_id=schedule.id, member_id=member.id))

    # Cancelled history does not block a new live reservation
    store.update(Reservation, 1, status=ReservationStatus.cancelled)
    assert store.insert(Reservation(schedule_id=schedule.id, member_id=member.id)) == 2


def test_other_database_errors_become_storage_error(session: Session, monkeypatch):
    store = RecordStore(session)

    def broken_commit():
        raise OperationalError("COMMIT", {}, Exception("database is locked"))

    monkeypatch.setattr(session, "commit", broken_commit)
    with pytest.raises(StorageError):
        store.insert(Member(name="Kim"))
