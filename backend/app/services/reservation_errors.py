"""
Caller-visible rejection types for the reservation engine.

Each error carries a stable code and the HTTP status the routes answer with.
Routes render them as HTTPException(detail="CODE: reason").
"""


class ReservationError(Exception):
    """Base exception for reservation engine rejections"""

    code = "RESERVATION_ERROR"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def detail(self) -> str:
        return f"{self.code}: {self.message}"


class InvalidSchedule(ReservationError):
    code = "INVALID_SCHEDULE"
    status_code = 400


class DuplicateReservation(ReservationError):
    code = "DUPLICATE_RESERVATION"
    status_code = 409


class NotFound(ReservationError):
    code = "NOT_FOUND"
    status_code = 404


class Forbidden(ReservationError):
    code = "FORBIDDEN"
    status_code = 403


class InvalidStatus(ReservationError):
    code = "INVALID_STATUS"
    status_code = 400


class CompletedSchedule(ReservationError):
    code = "COMPLETED_SCHEDULE"
    status_code = 400


class NoSwapHistory(ReservationError):
    code = "NO_SWAP_HISTORY"
    status_code = 400


class InvalidSwap(ReservationError):
    code = "INVALID_SWAP"
    status_code = 400


class InvalidScore(ReservationError):
    code = "INVALID_SCORE"
    status_code = 400


class DuplicateSchedule(ReservationError):
    code = "DUPLICATE_SCHEDULE"
    status_code = 409


class ScheduleHasReservations(ReservationError):
    code = "SCHEDULE_HAS_RESERVATIONS"
    status_code = 400
