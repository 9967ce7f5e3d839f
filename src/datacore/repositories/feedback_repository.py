"""
Feedback repository for the `feedbacks` table.

Feedback rows belong to a risk (`risk_id`) and are hard-deleted; the table has
audit timestamps but no soft-delete marker.
"""

from typing import Any, Sequence

from ..database.schema import TableSchema
from ..database.session import Database
from ..models.feedback import feedbacks
from .base_repository import BaseRepository, Record

FEEDBACK_SCHEMA = TableSchema(
    table=feedbacks,
    fillable=frozenset({"risk_id", "content", "type", "status", "created_by"}),
)


class FeedbackRepository(BaseRepository):
    def __init__(self, db: Database, **kwargs: Any):
        super().__init__(FEEDBACK_SCHEMA, db, **kwargs)

    def find_by_risk_id(self, risk_id: int, columns: Sequence[str] | None = None) -> list[Record]:
        """All feedback for one risk, oldest first."""
        return self.find_by({"risk_id": risk_id}, columns, order_by={"created_at": "ASC", "id": "ASC"})

    def find_by_status(self, status: str, columns: Sequence[str] | None = None) -> list[Record]:
        return self.find_by({"status": status}, columns, order_by={"created_at": "DESC", "id": "DESC"})


__all__ = ["FeedbackRepository", "FEEDBACK_SCHEMA"]
