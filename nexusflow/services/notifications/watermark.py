import uuid
from datetime import datetime

from sqlalchemy import update, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from nexusflow.db.models import Task
from nexusflow.utils.datetime_utils import to_naive_utc
from nexusflow.utils.errors import DatabaseError
from nexusflow.utils.logging import get_logger

logger = get_logger()


class WatermarkWriter:
    """Moves `last_notified_at` of a task (or note) forward, never backward."""

    def __init__(self, db_session: Session, model=Task):
        self.db = db_session
        self.model = model

    @property
    def _label(self) -> str:
        return self.model.__tablename__.rstrip("s")

    async def commit(self, row_id: uuid.UUID, instant: datetime, **values) -> bool:
        """
        Set the watermark to `instant` unless it already sits at or past it.
        Extra column `values` are written in the same conditional update.
        Returns True when the row changed.
        """
        model = self.model
        stored_instant = to_naive_utc(instant)
        try:
            result = self.db.execute(
                update(model)
                .where(
                    model.id == row_id,
                    or_(
                        model.last_notified_at.is_(None),
                        model.last_notified_at < stored_instant,
                    ),
                )
                .values(last_notified_at=stored_instant, **values)
                .execution_options(synchronize_session="fetch")
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to update watermark for {self._label} {row_id}: {str(e)}")
            raise DatabaseError(f"Failed to update watermark for {self._label} {row_id}")

        advanced = result.rowcount > 0
        if advanced:
            logger.debug(f"Watermark for {self._label} {row_id} advanced to {stored_instant}")
        else:
            logger.debug(
                f"Watermark for {self._label} {row_id} already at or past {stored_instant}"
            )
        return advanced
