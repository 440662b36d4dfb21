from app.models.golf_course import GolfCourse
from app.models.member import Member
from app.models.notification import Notification
from app.models.reservation import Reservation, ReservationStatus
from app.models.schedule import Schedule, ScheduleStatus

__all__ = [
    "GolfCourse",
    "Member",
    "Notification",
    "Reservation",
    "ReservationStatus",
    "Schedule",
    "ScheduleStatus",
]
