"""
Node repository for the `nodes` table (review steps).

A node reviews either a risk (`risk_review`, needs `risk_id`) or a feedback
entry (`feedback_review`, needs `feedback_id`). Nodes are hard-deleted.
"""

from typing import Any, Mapping, Sequence

from ..database.schema import TableSchema
from ..database.session import Database
from ..exceptions.base import InvalidInputError
from ..models.node import NODE_STATUSES, NODE_TYPES, nodes
from .base_repository import BaseRepository, Record

NODE_SCHEMA = TableSchema(
    table=nodes,
    fillable=frozenset({"risk_id", "feedback_id", "type", "status", "reviewer", "comments"}),
)

# node type -> reference column it requires
REQUIRED_REFERENCE = {"risk_review": "risk_id", "feedback_review": "feedback_id"}


class NodeRepository(BaseRepository):
    def __init__(self, db: Database, **kwargs: Any):
        super().__init__(NODE_SCHEMA, db, **kwargs)

    def create(self, data: Mapping[str, Any], enforce_whitelist: bool = True) -> Any:
        """Insert a node after checking its type and the reference that type requires."""
        node_type = data.get("type") if isinstance(data, Mapping) else None
        if node_type not in NODE_TYPES:
            raise InvalidInputError(
                f"Unknown node type: {node_type}",
                fields=["type"],
                context={"table": self.table_name, "allowed": list(NODE_TYPES)},
            )
        reference = REQUIRED_REFERENCE[node_type]
        if data.get(reference) is None:
            raise InvalidInputError(
                f"{node_type} nodes require {reference}",
                fields=[reference],
                context={"table": self.table_name, "type": node_type},
            )
        status = data.get("status")
        if status is not None and status not in NODE_STATUSES:
            raise InvalidInputError(
                f"Unknown node status: {status}",
                fields=["status"],
                context={"table": self.table_name, "allowed": list(NODE_STATUSES)},
            )
        return super().create(data, enforce_whitelist)

    def find_by_risk_id(self, risk_id: int, columns: Sequence[str] | None = None) -> list[Record]:
        return self.find_by({"risk_id": risk_id}, columns, order_by={"id": "ASC"})

    def find_by_feedback_id(self, feedback_id: int, columns: Sequence[str] | None = None) -> list[Record]:
        return self.find_by({"feedback_id": feedback_id}, columns, order_by={"id": "ASC"})

    def find_by_status(self, status: str, columns: Sequence[str] | None = None) -> list[Record]:
        return self.find_by({"status": status}, columns, order_by={"id": "ASC"})

    def find_pending_by_type(self, node_type: str, columns: Sequence[str] | None = None) -> list[Record]:
        """Nodes of `node_type` still waiting for a reviewer decision, oldest first."""
        return self.find_by({"type": node_type, "status": "pending"}, columns,
                            order_by={"created_at": "ASC", "id": "ASC"})


__all__ = ["NodeRepository", "NODE_SCHEMA"]
