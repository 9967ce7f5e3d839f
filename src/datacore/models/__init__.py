r"""
Centralized access to every table definition.

Tables are plain SQLAlchemy Core `Table` objects registered on the shared
`metadata`, so importing this package is enough for `metadata.create_all()`
to see all of them.

    from datacore.models import metadata, risks, feedbacks, nodes
"""

from ..database.base import metadata
from .risk import risks, RISK_STATUSES
from .feedback import feedbacks, FEEDBACK_TYPES, FEEDBACK_STATUSES
from .node import nodes, NODE_TYPES, NODE_STATUSES

__all__ = [
    "metadata",
    "risks",
    "feedbacks",
    "nodes",
    "RISK_STATUSES",
    "FEEDBACK_TYPES",
    "FEEDBACK_STATUSES",
    "NODE_TYPES",
    "NODE_STATUSES",
]
