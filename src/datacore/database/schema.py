"""
Schema descriptor used by repositories.

A TableSchema wraps a SQLAlchemy Core `Table` and records which of its
columns callers may write, plus the two opt-in conventions:

- timestamps: `created_at` / `updated_at` are stamped automatically
- soft_delete: rows are hidden by a non-null `deleted_at` instead of removed

Every identifier a repository puts into SQL comes from here, never from caller
input.
"""

from dataclasses import dataclass, field
from typing import Any, Iterable

from sqlalchemy import Column, Table

from ..exceptions.base import InvalidFieldError

CREATED_AT = "created_at"
UPDATED_AT = "updated_at"
DELETED_AT = "deleted_at"


@dataclass(frozen=True)
class TableSchema:
    table: Table
    fillable: frozenset[str] = field(default_factory=frozenset)
    primary_key: str = "id"
    soft_delete: bool = False
    timestamps: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "fillable", frozenset(self.fillable))

        known = set(self.table.c.keys())
        if self.primary_key not in known:
            raise InvalidFieldError(
                f"Primary key '{self.primary_key}' is not a column of '{self.table.name}'",
                fields=[self.primary_key],
            )
        unknown = sorted(set(self.fillable) - known)
        if unknown:
            raise InvalidFieldError(
                f"Fillable field(s) not present on '{self.table.name}': {', '.join(unknown)}",
                fields=unknown,
            )
        if self.soft_delete and DELETED_AT not in known:
            raise InvalidFieldError(
                f"Table '{self.table.name}' declares soft delete but has no '{DELETED_AT}' column",
                fields=[DELETED_AT],
            )

    @property
    def name(self) -> str:
        return self.table.name

    @property
    def columns(self) -> list[str]:
        return list(self.table.c.keys())

    @property
    def pk_column(self) -> Column:
        return self.table.c[self.primary_key]

    @property
    def has_created_at(self) -> bool:
        return self.timestamps and CREATED_AT in self.table.c

    @property
    def has_updated_at(self) -> bool:
        return self.timestamps and UPDATED_AT in self.table.c

    def is_fillable(self, name: str) -> bool:
        # An empty whitelist means "everything except the primary key".
        if not self.fillable:
            return name in self.table.c and name != self.primary_key
        return name in self.fillable

    def fields(self) -> dict[str, bool]:
        """Field name -> writable through create/update with the whitelist enforced."""
        return {name: self.is_fillable(name) for name in self.columns}

    def column(self, name: str) -> Column:
        try:
            return self.table.c[name]
        except KeyError:
            raise InvalidFieldError(
                f"Unknown field for {self.name}: {name}", fields=[name]
            ) from None

    def check_known(self, names: Iterable[str]) -> None:
        """Raise InvalidFieldError naming every entry of `names` that is not a column."""
        unknown = sorted({n for n in names if n not in self.table.c})
        if unknown:
            raise InvalidFieldError(
                f"Unknown field(s) for {self.name}: {', '.join(unknown)}", fields=unknown
            )

    def split_fillable(self, data: dict[str, Any]) -> tuple[dict[str, Any], list[str]]:
        """Return (kept, dropped) where kept only holds fillable keys, in input order."""
        kept: dict[str, Any] = {}
        dropped: list[str] = []
        for key, value in data.items():
            if self.is_fillable(key):
                kept[key] = value
            else:
                dropped.append(key)
        return kept, dropped


__all__ = ["TableSchema", "CREATED_AT", "UPDATED_AT", "DELETED_AT"]
