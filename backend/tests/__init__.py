# Force SQLModel table registration at test discovery time
from app.models.golf_course import GolfCourse  # noqa: F401
from app.models.member import Member  # noqa: F401
from app.models.notification import Notification  # noqa: F401
from app.models.reservation import Reservation  # noqa: F401
from app.models.schedule import Schedule  # noqa: F401
