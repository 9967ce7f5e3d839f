from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Table, Text

from ..database.base import metadata

NODE_TYPES = ("risk_review", "feedback_review")
NODE_STATUSES = ("pending", "approved", "rejected")

# Review step for a risk or a feedback entry. `risks.node_id` points here
# without a foreign key so the two tables can be created in any order.
nodes = Table(
    "nodes",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("risk_id", Integer, ForeignKey("risks.id", ondelete="CASCADE"), nullable=True, index=True),
    Column("feedback_id", Integer, ForeignKey("feedbacks.id", ondelete="CASCADE"), nullable=True, index=True),
    Column("type", String(32), nullable=False),
    Column("status", String(32), nullable=False, default="pending", index=True),
    Column("reviewer", String(255), nullable=False),
    Column("comments", Text, nullable=True),
    Column("created_at", DateTime, nullable=True),
    Column("updated_at", DateTime, nullable=True),
)
