"""
Risk repository for risk-specific database operations.

Extends BaseRepository with the queries the risk workflow needs: lookups by
status/category/owner, score-based filters (score = probability * impact),
bulk status changes, aggregate statistics and monthly trends. Risks are soft-deleted, so
every query here ignores rows with a `deleted_at` value.
"""

import logging
from datetime import date, datetime, time, timedelta
from typing import Any, Sequence

from sqlalchemy import case, extract, func, select, update

from ..database.executor import StatementKind
from ..database.schema import TableSchema
from ..database.session import Database
from ..exceptions.base import InvalidInputError
from ..models.risk import RISK_STATUSES, risks
from .base_repository import BaseRepository, Record

logger = logging.getLogger(__name__)

RISK_SCHEMA = TableSchema(
    table=risks,
    fillable=frozenset({
        "title",
        "description",
        "category",
        "probability",
        "impact",
        "status",
        "mitigation_plan",
        "owner",
        "due_date",
        "node_id",
    }),
    soft_delete=True,
)

HIGH_RISK_THRESHOLD = 15
MEDIUM_RISK_THRESHOLD = 9
CLOSED_STATUSES = ("closed",)

risk_score = risks.c.probability * risks.c.impact


class RiskRepository(BaseRepository):
    """
    Repository for the `risks` table.

    Inherits the generic CRUD surface; adds risk-specific lookups, bulk
    operations and statistics.
    """

    def __init__(self, db: Database, **kwargs: Any):
        super().__init__(RISK_SCHEMA, db, **kwargs)

    # =================================================================================================================
    # Lookups
    # =================================================================================================================

    def find_by_status(self, status: str, columns: Sequence[str] | None = None) -> list[Record]:
        return self.find_by({"status": status}, columns, order_by={"created_at": "DESC"})

    def find_by_category(self, category: str, columns: Sequence[str] | None = None) -> list[Record]:
        return self.find_by({"category": category}, columns, order_by={"created_at": "DESC"})

    def find_by_owner(self, owner: str, columns: Sequence[str] | None = None) -> list[Record]:
        return self.find_by({"owner": owner}, columns, order_by={"created_at": "DESC"})

    def find_high_risks(self, threshold: int = HIGH_RISK_THRESHOLD,
                        columns: Sequence[str] | None = None) -> list[Record]:
        """
        Risks whose score (probability * impact) is at least `threshold`,
        highest score first.
        """
        stmt = (
            select(*self._select_columns(columns))
            .where(risk_score >= threshold)
            .order_by(risk_score.desc(), risks.c.created_at.desc())
        )
        return self._select(self._apply_soft_delete(stmt, False), "find_high_risks")

    def find_by_score_range(self, min_score: int, max_score: int,
                            columns: Sequence[str] | None = None) -> list[Record]:
        if min_score > max_score:
            raise InvalidInputError(
                "min_score cannot be greater than max_score",
                fields=["min_score", "max_score"],
                context={"min_score": min_score, "max_score": max_score},
            )
        stmt = (
            select(*self._select_columns(columns))
            .where(risk_score.between(min_score, max_score))
            .order_by(risk_score.desc(), risks.c.created_at.desc())
        )
        return self._select(self._apply_soft_delete(stmt, False), "find_by_score_range")

    def find_urgent(self, columns: Sequence[str] | None = None) -> list[Record]:
        """Newly identified risks that already score as high."""
        stmt = (
            select(*self._select_columns(columns))
            .where(risks.c.status == "identified", risk_score >= HIGH_RISK_THRESHOLD)
            .order_by(risk_score.desc(), risks.c.created_at.asc())
        )
        return self._select(self._apply_soft_delete(stmt, False), "find_urgent")

    def find_due_soon(self, days: int = 7, columns: Sequence[str] | None = None,
                      today: date | None = None) -> list[Record]:
        """Open risks with a due date no later than `days` from today."""
        horizon = (today or date.today()) + timedelta(days=days)
        stmt = (
            select(*self._select_columns(columns))
            .where(
                risks.c.due_date.is_not(None),
                risks.c.due_date <= horizon,
                risks.c.status.not_in(CLOSED_STATUSES),
            )
            .order_by(risks.c.due_date.asc())
        )
        return self._select(self._apply_soft_delete(stmt, False), "find_due_soon")

    def find_by_date_range(self, start: date, end: date,
                           columns: Sequence[str] | None = None) -> list[Record]:
        """Risks created on any day from `start` to `end` (inclusive), newest first."""
        if start > end:
            raise InvalidInputError(
                "start date cannot be after end date",
                fields=["start", "end"],
                context={"start": start.isoformat(), "end": end.isoformat()},
            )
        stmt = (
            select(*self._select_columns(columns))
            .where(
                risks.c.created_at >= datetime.combine(start, time.min),
                risks.c.created_at < datetime.combine(end + timedelta(days=1), time.min),
            )
            .order_by(risks.c.created_at.desc(), risks.c.id.desc())
        )
        return self._select(self._apply_soft_delete(stmt, False), "find_by_date_range")

    def _select(self, stmt, operation: str) -> list[Record]:
        with self._annotate(operation):
            result = self._execute(stmt, StatementKind.SELECT)
        logger.debug(
            f"repo.{operation}.success",
            extra={"table": self.table_name, "row_count": len(result.rows)},
        )
        return result.rows

    # =================================================================================================================
    # Bulk operations
    # =================================================================================================================

    def batch_update_status(self, ids: Sequence[int], status: str) -> int:
        """
        Move every live risk in `ids` to `status` inside one transaction.

        Returns:
            Number of risks updated (soft-deleted ones are skipped).

        Raises:
            InvalidInputError: `status` is not a known risk status.
        """
        if not ids:
            return 0
        if status not in RISK_STATUSES:
            raise InvalidInputError(
                f"Unknown risk status: {status}",
                fields=["status"],
                context={"allowed": list(RISK_STATUSES)},
            )

        def apply(repo: "RiskRepository") -> int:
            stmt = (
                update(risks)
                .where(risks.c.id.in_(list(ids)), risks.c.deleted_at.is_(None))
                .values(status=status, updated_at=repo._clock())
            )
            with repo._annotate("batch_update_status", ids=list(ids)):
                result = repo._execute(stmt, StatementKind.UPDATE)
            return max(result.rowcount, 0)

        affected = self.transaction(apply)
        logger.info(
            "repo.batch_update_status.success",
            extra={"table": self.table_name, "ids": list(ids), "new_status": status, "affected": affected},
        )
        return affected

    def batch_soft_delete(self, ids: Sequence[int]) -> int:
        """Soft-delete every live risk in `ids`; returns the number marked."""
        if not ids:
            return 0

        now = self._clock()
        stmt = (
            update(risks)
            .where(risks.c.id.in_(list(ids)), risks.c.deleted_at.is_(None))
            .values(deleted_at=now, updated_at=now)
        )
        with self._annotate("batch_soft_delete", ids=list(ids)):
            result = self._execute(stmt, StatementKind.UPDATE)

        affected = max(result.rowcount, 0)
        logger.info(
            "repo.batch_soft_delete.success",
            extra={"table": self.table_name, "ids": list(ids), "affected": affected},
        )
        return affected

    # =================================================================================================================
    # Statistics
    # =================================================================================================================

    def get_statistics(self) -> dict[str, Any]:
        """
        Aggregate view over live risks.

        Returns:
            {
                "summary": {total_risks, high_risk_count, medium_risk_count,
                            low_risk_count, avg_risk_score, max_risk_score,
                            min_risk_score},
                "by_status": [{status, count, avg_score}, ...],
                "by_category": [{category, count, avg_score}, ...],
            }
        """
        score = risk_score
        live = risks.c.deleted_at.is_(None)

        summary_stmt = select(
            func.count().label("total_risks"),
            func.sum(case((score >= HIGH_RISK_THRESHOLD, 1), else_=0)).label("high_risk_count"),
            func.sum(
                case(((score >= MEDIUM_RISK_THRESHOLD) & (score < HIGH_RISK_THRESHOLD), 1), else_=0)
            ).label("medium_risk_count"),
            func.sum(case((score < MEDIUM_RISK_THRESHOLD, 1), else_=0)).label("low_risk_count"),
            func.avg(score).label("avg_risk_score"),
            func.max(score).label("max_risk_score"),
            func.min(score).label("min_risk_score"),
        ).select_from(risks).where(live)

        with self._annotate("get_statistics"):
            row = self._execute(summary_stmt, StatementKind.SELECT).first() or {}
            by_status = self._group_stats(risks.c.status, live)
            by_category = self._group_stats(risks.c.category, live)

        summary = {
            "total_risks": int(row.get("total_risks") or 0),
            "high_risk_count": int(row.get("high_risk_count") or 0),
            "medium_risk_count": int(row.get("medium_risk_count") or 0),
            "low_risk_count": int(row.get("low_risk_count") or 0),
            "avg_risk_score": _round(row.get("avg_risk_score")),
            "max_risk_score": row.get("max_risk_score"),
            "min_risk_score": row.get("min_risk_score"),
        }
        return {"summary": summary, "by_status": by_status, "by_category": by_category}

    def get_trend_data(self, months: int = 12, today: date | None = None) -> list[dict[str, Any]]:
        """
        Monthly creation trend over live risks, oldest month first.

        Covers the current month and the `months` months before it. Months
        without new risks are omitted.

        Returns:
            [{"month": "2024-05", "total_created": 4, "high_risk_created": 1,
              "avg_score": 8.5}, ...]
        """
        if months < 0:
            raise InvalidInputError("months cannot be negative", fields=["months"], context={"months": months})

        today = today or date.today()
        index = today.year * 12 + today.month - 1 - months
        since = datetime(index // 12, index % 12 + 1, 1)

        year = extract("year", risks.c.created_at)
        month = extract("month", risks.c.created_at)
        stmt = (
            select(
                year.label("year"),
                month.label("month"),
                func.count().label("total_created"),
                func.sum(case((risk_score >= HIGH_RISK_THRESHOLD, 1), else_=0)).label("high_risk_created"),
                func.avg(risk_score).label("avg_score"),
            )
            .where(risks.c.created_at >= since, risks.c.deleted_at.is_(None))
            .group_by(year, month)
            .order_by(year.asc(), month.asc())
        )
        with self._annotate("get_trend_data", months=months):
            rows = self._execute(stmt, StatementKind.SELECT).rows

        return [
            {
                "month": f"{int(row['year']):04d}-{int(row['month']):02d}",
                "total_created": int(row["total_created"]),
                "high_risk_created": int(row["high_risk_created"] or 0),
                "avg_score": _round(row["avg_score"]),
            }
            for row in rows
        ]

    def _group_stats(self, column, live) -> list[dict[str, Any]]:
        score = risk_score
        count = func.count().label("count")
        stmt = (
            select(column, count, func.avg(score).label("avg_score"))
            .where(live)
            .group_by(column)
            .order_by(count.desc(), column.asc())
        )
        rows = self._execute(stmt, StatementKind.SELECT).rows
        return [
            {column.key: row[column.key], "count": int(row["count"]), "avg_score": _round(row["avg_score"])}
            for row in rows
        ]


def _round(value: Any) -> float | None:
    return None if value is None else round(float(value), 2)


__all__ = ["RiskRepository", "RISK_SCHEMA", "HIGH_RISK_THRESHOLD"]
