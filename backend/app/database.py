import logging
import os
from pathlib import Path
from typing import Generator

from dotenv import load_dotenv
from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

load_dotenv()

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./club.db")

# Seconds a writer waits on a locked SQLite file before the write fails
SQLITE_BUSY_TIMEOUT = 15

_is_sqlite = DATABASE_URL.startswith("sqlite")
_echo = os.getenv("SQL_ECHO", "false").lower() in ("true", "1", "yes")

if _is_sqlite:
    db_path = DATABASE_URL.replace("sqlite:///", "", 1)
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    engine: Engine = create_engine(
        DATABASE_URL,
        echo=_echo,
        connect_args={"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT},
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

else:
    engine = create_engine(DATABASE_URL, echo=_echo, pool_pre_ping=True)


def get_session() -> Generator[Session, None, None]:
    """One session per request; services commit their own writes"""
    with Session(engine) as session:
        yield session


def init_db() -> None:
    """Create any missing tables. Alembic owns schema changes after the first deploy."""
    import app.models  # noqa: F401  registers every table on SQLModel.metadata

    SQLModel.metadata.create_all(engine)
    logger.info(f"Database ready ({engine.url.get_backend_name()})")
