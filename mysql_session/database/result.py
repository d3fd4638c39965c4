"""
Query results.

A ResultSet is the materialized output of a row-producing statement.
Statements that produce no result set (DDL, UPDATE, ...) are represented by
None instead, so "no result set" and "zero rows" stay distinguishable.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional


@dataclass
class ResultSet:
    """
    Rows returned by a single statement.

    Attributes:
        columns: Column names in select order
        rows: Raw row tuples in server order
        affected_rows: Row count reported by the driver
        last_insert_id: Insert id reported by the driver
    """
    columns: List[str]
    rows: List[tuple] = field(default_factory=list)
    affected_rows: int = 0
    last_insert_id: int = 0

    @classmethod
    def from_cursor(cls, cursor) -> Optional["ResultSet"]:
        """
        Drain a PyMySQL cursor positioned on a result.

        Returns:
            ResultSet, or None if the current statement produced no result set
        """
        if cursor.description is None:
            return None
        columns = [column[0] for column in cursor.description]
        rows = list(cursor.fetchall())
        return cls(
            columns=columns,
            rows=rows,
            affected_rows=cursor.rowcount,
            last_insert_id=cursor.lastrowid or 0,
        )

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self) -> Iterator[Dict[str, Any]]:
        for row in self.rows:
            yield dict(zip(self.columns, row))

    @property
    def is_empty(self) -> bool:
        return not self.rows

    def fetch_all(self) -> List[Dict[str, Any]]:
        """All rows as column-name -> value dicts."""
        return list(self)

    def fetch_assoc(self) -> Optional[Dict[str, Any]]:
        """First row as a dict, or None if there are no rows."""
        if not self.rows:
            return None
        return dict(zip(self.columns, self.rows[0]))

    def first_value(self) -> Any:
        """First column of the first row, or None if there are no rows."""
        if not self.rows:
            return None
        return self.rows[0][0]

    def column(self, index: int = 0) -> List[Any]:
        """One column of every row."""
        return [row[index] for row in self.rows]
