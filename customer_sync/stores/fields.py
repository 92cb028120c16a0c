"""
Field sets for dynamic UPDATE and INSERT statements.

A FieldSet is an ordered column -> value mapping assembled once by the
caller. Optional columns (a new profile picture, a re-hashed password) are
added only when present, and the statement is composed from whatever the
set holds, so every optional column lands in one statement.
"""

import logging
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

from psycopg2 import sql

logger = logging.getLogger(__name__)


class FieldSet:
    """Ordered mapping of column name to value."""

    def __init__(self, values: Optional[Mapping[str, Any]] = None):
        self._values: Dict[str, Any] = {}
        for column, value in (values or {}).items():
            self.set(column, value)

    def set(self, column: str, value: Any) -> "FieldSet":
        if not column or not isinstance(column, str):
            raise ValueError(f"Invalid column name: {column!r}")
        self._values[column] = value
        return self

    def set_if_present(self, column: str, value: Any) -> "FieldSet":
        """Add the column only when value is not None or empty."""
        if value is not None and value != "":
            self.set(column, value)
        return self

    def merged(self, other: "FieldSet") -> "FieldSet":
        combined = FieldSet(self._values)
        for column, value in other.items():
            combined.set(column, value)
        return combined

    @property
    def columns(self) -> List[str]:
        return list(self._values.keys())

    @property
    def values(self) -> List[Any]:
        return list(self._values.values())

    def items(self) -> Iterator[Tuple[str, Any]]:
        return iter(self._values.items())

    def as_dict(self) -> Dict[str, Any]:
        return dict(self._values)

    def __contains__(self, column: str) -> bool:
        return column in self._values

    def __getitem__(self, column: str) -> Any:
        return self._values[column]

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        # values may include credential hashes
        return f"FieldSet(columns={self.columns})"

    def update_statement(
        self,
        table: str,
        where: Mapping[str, Any]
    ) -> Tuple[sql.Composed, List[Any]]:
        """
        Compose `UPDATE table SET ... WHERE ...`.

        Args:
            table: Target table
            where: Equality conditions joined with AND

        Returns:
            (statement, params) with SET values first, then WHERE values

        Raises:
            ValueError: If the set or the condition is empty
        """
        if not self._values:
            raise ValueError("Cannot build UPDATE from an empty field set")
        if not where:
            raise ValueError("Refusing to build UPDATE without a WHERE clause")

        set_clause = sql.SQL(", ").join(
            sql.SQL("{} = %s").format(sql.Identifier(column)) for column in self.columns
        )
        statement = sql.SQL("UPDATE {} SET {} WHERE {}").format(
            sql.Identifier(table),
            set_clause,
            where_clause(where.keys())
        )
        return statement, self.values + list(where.values())

    def insert_statement(self, table: str) -> Tuple[sql.Composed, List[Any]]:
        """Compose `INSERT INTO table (...) VALUES (...)`."""
        if not self._values:
            raise ValueError("Cannot build INSERT from an empty field set")

        statement = sql.SQL("INSERT INTO {} ({}) VALUES ({})").format(
            sql.Identifier(table),
            sql.SQL(", ").join(sql.Identifier(column) for column in self.columns),
            sql.SQL(", ").join(sql.Placeholder() for _ in self.columns)
        )
        return statement, self.values


def where_clause(columns) -> sql.Composed:
    """`col1 = %s AND col2 = %s ...` for the given columns."""
    return sql.SQL(" AND ").join(
        sql.SQL("{} = %s").format(sql.Identifier(column)) for column in columns
    )
