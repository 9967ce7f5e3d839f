from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Integer,
    String,
    Table,
    Text,
)

from ..database.base import metadata

RISK_STATUSES = ("identified", "analyzing", "mitigating", "monitoring", "closed")

risks = Table(
    "risks",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("title", String(255), nullable=False),
    Column("description", Text, nullable=False, default=""),
    Column("category", String(100), nullable=True, index=True),
    Column("probability", Integer, nullable=False),
    Column("impact", Integer, nullable=False),
    Column("status", String(32), nullable=False, default="identified", index=True),
    Column("mitigation_plan", Text, nullable=True),
    Column("owner", String(255), nullable=True, index=True),
    Column("due_date", Date, nullable=True),
    Column("node_id", Integer, nullable=True),
    Column("created_at", DateTime, nullable=True),
    Column("updated_at", DateTime, nullable=True),
    Column("deleted_at", DateTime, nullable=True),
    CheckConstraint("probability BETWEEN 1 AND 5", name="probability_range"),
    CheckConstraint("impact BETWEEN 1 AND 5", name="impact_range"),
)
