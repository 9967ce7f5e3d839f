"""
Repository layer initialization module.

Exports the generic BaseRepository and the table-specific repositories built
on it. Every repository takes the shared `Database` handle in its constructor.

Usage:
    from datacore.repositories import RiskRepository, FeedbackRepository, NodeRepository
"""

from .base_repository import BaseRepository
from .risk_repository import RiskRepository, RISK_SCHEMA
from .feedback_repository import FeedbackRepository, FEEDBACK_SCHEMA
from .node_repository import NodeRepository, NODE_SCHEMA

__all__ = [
    "BaseRepository",
    "RiskRepository",
    "FeedbackRepository",
    "NodeRepository",
    "RISK_SCHEMA",
    "FEEDBACK_SCHEMA",
    "NODE_SCHEMA",
]
