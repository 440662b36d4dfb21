import logging
import os
import subprocess
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.database import init_db
from app.routes import golf_courses, members, notifications, reservations, schedules

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

APP_NAME = "Club Reservation API"



@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    route_count = sum(1 for r in app.routes if getattr(r, "path", None))
    logger.info(f"{APP_NAME} started: {route_count} routes, build {BUILD_HASH}")
    yield


app = FastAPI(title=APP_NAME, lifespan=lifespan)


def get_build_info():
    """Get git commit hash or build timestamp"""
    try:
        result = subprocess.run(
            ["git", "rev-parse", "--short", "HEAD"],
            cwd=os.path.dirname(os.path.dirname(__file__)),
            capture_output=True,
            text=True,
            timeout=2,
        )
        if result.returncode == 0:
            return result.stdout.strip()
    except (OSError, subprocess.SubprocessError):
        pass

    return datetime.now().strftime("%Y%m%d-%H%M%S")


BUILD_HASH = get_build_info()

_cors_origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
_extra = os.getenv("CORS_ORIGINS", "")
if _extra:
    _cors_origins.extend(o.strip() for o in _extra.split(",") if o.strip())

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# /schedules/available is declared in the schedules router ahead of /schedules/{id}
app.include_router(schedules.router, prefix="/api", tags=["schedules"])
app.include_router(reservations.router, prefix="/api", tags=["reservations"])
app.include_router(members.router, prefix="/api", tags=["members"])
app.include_router(golf_courses.router, prefix="/api", tags=["golf-courses"])
app.include_router(notifications.router, prefix="/api", tags=["notifications"])



@app.get("/api/health")
def health_check():
    """Liveness probe"""
    return {"app_name": APP_NAME, "build_hash": BUILD_HASH, "status": "healthy"}
