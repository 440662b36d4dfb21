"""
Post-round scores.

An admin records the strokes a member played on a reservation; the member's
avg_score is recomputed from every scored reservation and recent_score is
the value just entered.
"""

import logging
import math
from typing import Optional

from sqlmodel import Session

from app.models.member import Member
from app.models.reservation import Reservation
from app.services.record_store import RecordStore
from app.services.reservation_errors import InvalidScore, NotFound

logger = logging.getLogger(__name__)

MIN_SCORE = 50
MAX_SCORE = 200


def record_score(session: Session, reservation_id: int, score: Optional[int]) -> Member:
    """
    Set (or clear, with None) the score on a reservation and refresh the
    member's averages.

    Returns the updated member.
    """
    if score is not None and not MIN_SCORE <= score <= MAX_SCORE:
        raise InvalidScore(f"Score must be between {MIN_SCORE} and {MAX_SCORE}, got {score}")

    store = RecordStore(session)
    store.refresh_cache(Reservation)
    reservation = store.find_by_id(Reservation, reservation_id)
    if not reservation:
        raise NotFound(f"Reservation {reservation_id} not found")

    store.update(Reservation, reservation_id, score=score)

    store.refresh_cache(Reservation)
    store.refresh_cache(Member)
    scores = [
        r.score for r in store.get_table(Reservation, member_id=reservation.member_id) if r.score is not None
    ]
    if scores:
        # Round half up
        avg_score = math.floor(sum(scores) / len(scores) + 0.5)
        store.update(Member, reservation.member_id, avg_score=avg_score, recent_score=score)
    else:
        store.update(Member, reservation.member_id, avg_score=None, recent_score=None)

    member = store.find_by_id(Member, reservation.member_id)
    logger.info(
        f"Reservation {reservation_id}: score {score} recorded for member {reservation.member_id} "
        f"(avg {member.avg_score if member else None})"
    )
    return member
