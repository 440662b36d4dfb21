"""
Team Assignment: seat a schedule's reservations into tee-time teams

Two passes, preference first:
1. Preference pass: for each declared tee-time (schedule order), seat the
   reservations that asked for exactly that tee-time, earliest applied first,
   up to TEAM_SIZE per team.
2. Overflow pass: everyone else (no preference, or preferred team full) is
   sorted by (preferred team or 1, applied_at) and scans forward from their
   preferred team, wrapping to team 1, for the first team with a free seat.

Confirmation is independent of which team a reservation lands in: seated
reservations are ranked by fairness (priority, applied_at) and the first
max_members are confirmed, the rest waitlisted.

Reservations that find no seat (more reservations than teams x TEAM_SIZE) are
left without a team or tee-time as waitlist standby and counted in
overflow_count. A team never holds more than TEAM_SIZE reservations.

Inputs are pending/confirmed reservations plus waitlist reservations that a
previous run already placed on a team, so re-running on an unchanged set
reproduces the same assignment.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlmodel import Session

from app.models.reservation import SEATED_STATUSES, Reservation, ReservationStatus
from app.models.schedule import Schedule
from app.services.record_store import RecordStore
from app.services.reservation_errors import InvalidSchedule
from app.services.reservation_lifecycle import schedule_capacity, schedule_lock
from app.services.schedule_service import TEAM_SIZE, schedule_tee_times

logger = logging.getLogger(__name__)


@dataclass
class AssignmentEntry:
    reservation_id: int
    priority: int = 0
    applied_at: Optional[datetime] = None
    preferred_tee_time: Optional[str] = None


@dataclass
class TeamPlacement:
    reservation_id: int
    team_number: Optional[int]
    tee_time: Optional[str]
    status: ReservationStatus

    @property
    def seated(self) -> bool:
        return self.team_number is not None


class TeamAssignmentResult:
    """Structured result from a team assignment run"""

    def __init__(self, tee_times: Sequence[str], placements: List[TeamPlacement]):
        self.tee_times = list(tee_times)
        self.placements = placements

    @property
    def assigned_count(self) -> int:
        return sum(1 for p in self.placements if p.seated)

    @property
    def confirmed_count(self) -> int:
        return sum(1 for p in self.placements if p.status == ReservationStatus.confirmed)

    @property
    def waitlist_count(self) -> int:
        return sum(1 for p in self.placements if p.status == ReservationStatus.waitlist)

    @property
    def overflow_count(self) -> int:
        return sum(1 for p in self.placements if not p.seated)

    def teams(self) -> List[Dict[str, Any]]:
        teams = []
        for team_number, tee_time in enumerate(self.tee_times, start=1):
            members = [p for p in self.placements if p.team_number == team_number and p.seated]
            teams.append(
                {
                    "team_number": team_number,
                    "tee_time": tee_time,
                    "reservation_ids": [p.reservation_id for p in members],
                }
            )
        return teams

    def to_dict(self) -> Dict[str, Any]:
        return {
            "assigned_count": self.assigned_count,
            "confirmed_count": self.confirmed_count,
            "waitlist_count": self.waitlist_count,
            "overflow_count": self.overflow_count,
            "teams": self.teams(),
        }


def fairness_key(entry: AssignmentEntry) -> Tuple:
    """
    Ranking for the confirm/waitlist split.

    Order: priority → applied_at → reservation_id

    Members who did not play the venue's previous schedule (priority 0) rank
    ahead; within a priority, earlier applications win.
    """
    return (entry.priority or 0, entry.applied_at or datetime.max, entry.reservation_id)


def applied_key(entry: AssignmentEntry) -> Tuple:
    return (entry.applied_at or datetime.max, entry.reservation_id)


def plan_team_assignment(
    entries: Sequence[AssignmentEntry],
    tee_times: Sequence[str],
    max_members: int,
    team_size: int = TEAM_SIZE,
) -> List[TeamPlacement]:
    """
    Compute team, tee-time and status for every entry. Pure; no I/O.

    Returns placements in fairness order.
    """
    if not tee_times:
        raise ValueError("At least one tee-time is required")

    team_count = len(tee_times)
    occupancy = {team_number: 0 for team_number in range(1, team_count + 1)}
    team_for_tee_time: Dict[str, int] = {}
    for team_number, tee_time in enumerate(tee_times, start=1):
        team_for_tee_time.setdefault(tee_time, team_number)

    seats: Dict[int, int] = {}

    # Preference pass
    by_preference: Dict[int, List[AssignmentEntry]] = {n: [] for n in occupancy}
    unassigned: List[Tuple[Optional[int], AssignmentEntry]] = []
    for entry in sorted(entries, key=applied_key):
        preferred_team = team_for_tee_time.get(entry.preferred_tee_time) if entry.preferred_tee_time else None
        if preferred_team is None:
            unassigned.append((None, entry))
        else:
            by_preference[preferred_team].append(entry)

    for team_number in range(1, team_count + 1):
        for entry in by_preference[team_number]:
            if occupancy[team_number] < team_size:
                seats[entry.reservation_id] = team_number
                occupancy[team_number] += 1
            else:
                unassigned.append((team_number, entry))

    # Overflow pass
    unassigned.sort(key=lambda item: (item[0] or 1, applied_key(item[1])))
    for preferred_team, entry in unassigned:
        start = preferred_team or 1
        scan = list(range(start, team_count + 1)) + list(range(1, start))
        for team_number in scan:
            if occupancy[team_number] < team_size:
                seats[entry.reservation_id] = team_number
                occupancy[team_number] += 1
                break

    # Final pass: confirm/waitlist by fairness
    placements: List[TeamPlacement] = []
    confirmed = 0
    for entry in sorted(entries, key=fairness_key):
        if entry.reservation_id in seats:
            team_number = seats[entry.reservation_id]
            if confirmed < max_members:
                status = ReservationStatus.confirmed
                confirmed += 1
            else:
                status = ReservationStatus.waitlist
            placements.append(TeamPlacement(entry.reservation_id, team_number, tee_times[team_number - 1], status))
        else:
            placements.append(TeamPlacement(entry.reservation_id, None, None, ReservationStatus.waitlist))
    return placements


def _assignment_inputs(store: RecordStore, schedule_id: int) -> List[Reservation]:
    seated = store.get_table(Reservation, schedule_id=schedule_id, status=SEATED_STATUSES)
    # waitlisted by a previous run's confirm split, still holding a seat
    parked = [
        r
        for r in store.get_table(Reservation, schedule_id=schedule_id, status=ReservationStatus.waitlist)
        if r.team_number is not None
    ]
    return seated + parked


def assign_teams(session: Session, schedule_id: int) -> TeamAssignmentResult:
    """
    Run team assignment for a schedule and persist the outcome.

    Each reservation is updated independently and only when its team, tee-time
    or status changes, so re-running after a partial failure is safe. Any
    recorded team swap is cleared because the swap no longer describes the
    new assignment.
    """
    store = RecordStore(session)
    with schedule_lock(schedule_id):
        store.refresh_cache(Schedule)
        store.refresh_cache(Reservation)

        schedule = store.find_by_id(Schedule, schedule_id)
        if not schedule:
            raise InvalidSchedule(f"Schedule {schedule_id} not found")

        tee_times = schedule_tee_times(schedule)
        max_members = schedule_capacity(store, schedule)
        reservations = {r.id: r for r in _assignment_inputs(store, schedule_id)}
        entries = [
            AssignmentEntry(
                reservation_id=r.id,
                priority=r.priority or 0,
                applied_at=r.applied_at,
                preferred_tee_time=r.preferred_tee_time,
            )
            for r in reservations.values()
        ]
        placements = plan_team_assignment(entries, tee_times, max_members)

        for placement in placements:
            current = reservations[placement.reservation_id]
            unchanged = (
                current.team_number == placement.team_number
                and current.tee_time == placement.tee_time
                and current.status == placement.status
                and current.swap_partner_id is None
            )
            if unchanged:
                continue
            store.update(
                Reservation,
                placement.reservation_id,
                team_number=placement.team_number,
                tee_time=placement.tee_time,
                status=placement.status,
                swap_partner_id=None,
                swap_original_team=None,
                swap_original_tee_time=None,
            )

        result = TeamAssignmentResult(tee_times, placements)
        logger.info(
            f"Schedule {schedule_id}: assigned {result.assigned_count} reservations to {len(tee_times)} teams "
            f"({result.confirmed_count} confirmed, {result.waitlist_count} waitlist, {result.overflow_count} overflow)"
        )
        if result.overflow_count:
            logger.warning(
                f"Schedule {schedule_id}: {result.overflow_count} reservations exceed team capacity "
                f"({len(tee_times)} x {TEAM_SIZE}) and were left unseated on the waitlist"
            )
        return result
