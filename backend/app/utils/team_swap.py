"""
Admin team swap: exchange two reservations' teams and undo it later

Invariants:
1. **Same schedule**: both reservations belong to one schedule
2. **Both seated**: both already have a team from team assignment
3. **Different teams**: swapping within one team is a no-op and is rejected
4. **One swap at a time**: a reservation with a recorded swap must be reverted
   before it is swapped again, so revert always restores the pre-swap state
5. **Exact revert**: both sides record partner, original team and original
   tee-time; revert restores them and clears the record
"""

import logging
from typing import Optional, Tuple

from sqlmodel import Session

from app.models.reservation import Reservation
from app.services.record_store import RecordStore
from app.services.reservation_errors import InvalidSwap, NoSwapHistory, NotFound
from app.services.reservation_lifecycle import schedule_lock

logger = logging.getLogger(__name__)


def _get_reservation(store: RecordStore, reservation_id: int) -> Reservation:
    reservation = store.find_by_id(Reservation, reservation_id)
    if not reservation:
        raise NotFound(f"Reservation {reservation_id} not found")
    return reservation


def validate_swap(first: Reservation, second: Reservation, from_team: Optional[int] = None) -> None:
    """Raise InvalidSwap when the pair cannot be swapped."""
    if first.id == second.id:
        raise InvalidSwap("Cannot swap a reservation with itself")
    if first.schedule_id != second.schedule_id:
        raise InvalidSwap(f"Reservations {first.id} and {second.id} belong to different schedules")
    if first.team_number is None or second.team_number is None:
        raise InvalidSwap("Both reservations must have a team; run team assignment first")
    if from_team is not None and first.team_number != from_team:
        raise InvalidSwap(f"Reservation {first.id} is on team {first.team_number}, not team {from_team}")
    if first.team_number == second.team_number:
        raise InvalidSwap(f"Reservations {first.id} and {second.id} are already on the same team")
    for reservation in (first, second):
        if reservation.swap_partner_id is not None:
            raise InvalidSwap(
                f"Reservation {reservation.id} already has a swap with reservation "
                f"{reservation.swap_partner_id}; revert it first"
            )


def swap_teams(
    session: Session, reservation_id: int, partner_id: int, from_team: Optional[int] = None
) -> Tuple[Reservation, Reservation]:
    """
    Exchange team_number/tee_time between two reservations, recording how to undo it.

    Args:
        reservation_id: Reservation being moved
        partner_id: Reservation it trades places with
        from_team: Optional team the admin believes reservation_id is on (stale-view guard)
    """
    store = RecordStore(session)
    store.refresh_cache(Reservation)
    first = _get_reservation(store, reservation_id)

    with schedule_lock(first.schedule_id):
        store.refresh_cache(Reservation)
        first = _get_reservation(store, reservation_id)
        second = _get_reservation(store, partner_id)
        validate_swap(first, second, from_team)

        first_team, first_tee = first.team_number, first.tee_time
        second_team, second_tee = second.team_number, second.tee_time

        store.update(
            Reservation,
            first.id,
            team_number=second_team,
            tee_time=second_tee,
            swap_partner_id=partner_id,
            swap_original_team=first_team,
            swap_original_tee_time=first_tee,
        )
        store.update(
            Reservation,
            partner_id,
            team_number=first_team,
            tee_time=first_tee,
            swap_partner_id=reservation_id,
            swap_original_team=second_team,
            swap_original_tee_time=second_tee,
        )
        logger.info(
            f"Swapped reservation {reservation_id} (team {first_team} -> {second_team}) "
            f"with reservation {partner_id} (team {second_team} -> {first_team})"
        )
        return _get_reservation(store, reservation_id), _get_reservation(store, partner_id)


def _restore(store: RecordStore, reservation: Reservation) -> None:
    store.update(
        Reservation,
        reservation.id,
        team_number=reservation.swap_original_team,
        tee_time=reservation.swap_original_tee_time,
        swap_partner_id=None,
        swap_original_team=None,
        swap_original_tee_time=None,
    )


def revert_swap(session: Session, reservation_id: int) -> Tuple[Reservation, Optional[Reservation]]:
    """
    Undo the recorded swap on both sides.

    The partner is restored only if its record still points back at this
    reservation.
    """
    store = RecordStore(session)
    store.refresh_cache(Reservation)
    reservation = _get_reservation(store, reservation_id)

    with schedule_lock(reservation.schedule_id):
        store.refresh_cache(Reservation)
        reservation = _get_reservation(store, reservation_id)
        if reservation.swap_partner_id is None or reservation.swap_original_team is None:
            raise NoSwapHistory(f"Reservation {reservation_id} has no team swap to revert")

        partner_id = reservation.swap_partner_id
        partner = store.find_by_id(Reservation, partner_id)

        _restore(store, reservation)
        if partner is not None and partner.swap_partner_id == reservation_id and partner.swap_original_team is not None:
            _restore(store, partner)
        else:
            partner = None
            logger.warning(f"Reservation {reservation_id}: swap partner {partner_id} no longer points back; reverted one side")

        logger.info(f"Reverted team swap between reservations {reservation_id} and {partner_id}")
        return (
            _get_reservation(store, reservation_id),
            _get_reservation(store, partner_id) if partner is not None else None,
        )
