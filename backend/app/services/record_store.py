"""
Record store over a SQLModel session.

The session identity map is a read cache: rows loaded earlier in the request
are served from memory until they are expired. Any check-then-write decision
(duplicate check, capacity check, promotion) MUST call refresh_cache() for the
tables it reads immediately before reading them.
"""

import logging
from datetime import datetime
from typing import Any, List, Optional, Type, TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, SQLModel, select

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=SQLModel)


class StorageError(Exception):
    """Storage write/read failed; safe for the caller to retry"""

    pass


class RecordStore:
    def __init__(self, session: Session):
        self.session = session

    def refresh_cache(self, model: Type[SQLModel]) -> None:
        """Expire every cached instance of `model` so the next read hits storage."""
        for obj in list(self.session.identity_map.values()):
            if isinstance(obj, model):
                self.session.expire(obj)

    def get_table(self, model: Type[ModelT], order_by: Any = None, **filters: Any) -> List[ModelT]:
        query = select(model)
        for column, value in filters.items():
            attr = getattr(model, column)
            if isinstance(value, (list, tuple, set)):
                query = query.where(attr.in_([getattr(v, "value", v) for v in value]))
            else:
                query = query.where(attr == getattr(value, "value", value))
        if order_by is not None:
            query = query.order_by(order_by)
        try:
            return list(self.session.exec(query).all())
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to read {model.__name__}: {e}") from e

    def find_by_id(self, model: Type[ModelT], record_id: Optional[int]) -> Optional[ModelT]:
        if record_id is None:
            return None
        try:
            return self.session.get(model, record_id)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to read {model.__name__} {record_id}: {e}") from e

    def insert(self, record: ModelT) -> int:
        """Insert a record, stamping timestamps. Unique violations re-raise as IntegrityError."""
        now = datetime.utcnow()
        for stamp in ("created_at", "updated_at"):
            if hasattr(record, stamp):
                setattr(record, stamp, now)
        self.session.add(record)
        self._commit()
        self.session.refresh(record)
        return record.id

    def update(self, model: Type[SQLModel], record_id: int, **fields: Any) -> bool:
        """Partial update. Returns False when the record does not exist."""
        record = self.find_by_id(model, record_id)
        if record is None:
            return False
        for field, value in fields.items():
            setattr(record, field, value)
        if hasattr(record, "updated_at"):
            record.updated_at = datetime.utcnow()
        self.session.add(record)
        self._commit()
        return True

    def delete(self, model: Type[SQLModel], record_id: int) -> bool:
        record = self.find_by_id(model, record_id)
        if record is None:
            return False
        self.session.delete(record)
        self._commit()
        return True

    def _commit(self) -> None:
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Storage write failed: {e}")
            raise StorageError(f"Storage write failed: {e}") from e
