from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Table, Text

from ..database.base import metadata

FEEDBACK_TYPES = ("comment", "assessment", "mitigation_proposal", "status_update")
FEEDBACK_STATUSES = ("pending", "approved", "rejected")

feedbacks = Table(
    "feedbacks",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("risk_id", Integer, ForeignKey("risks.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("content", Text, nullable=False),
    Column("type", String(32), nullable=False),
    Column("status", String(32), nullable=False, default="pending", index=True),
    Column("created_by", String(255), nullable=False),
    Column("created_at", DateTime, nullable=True),
    Column("updated_at", DateTime, nullable=True),
)
