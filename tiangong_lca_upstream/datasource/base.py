"""Tabular data source protocol and the empty-result marker."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Protocol, Sequence

from tiangong_lca_upstream.core.exceptions import ColumnNotFoundError, DataSourceError
from tiangong_lca_upstream.core.logging import get_logger

LOGGER = get_logger(__name__)

Row = dict[str, Any]


class DataSource(Protocol):
    """Spreadsheet-like store queried by table, equality filters, and projected columns."""

    def list_tables(self) -> list[str]: ...

    def query(
        self,
        table: str,
        filters: Mapping[str, Any] | None = None,
        projection: Sequence[str] | None = None,
    ) -> list[Row]: ...


@dataclass(slots=True, frozen=True)
class QueryResult:
    """Rows returned by ``safe_query``; ``error`` is set when the query was rejected."""

    table: str
    rows: tuple[Row, ...] = ()
    error: str | None = None

    @property
    def is_empty(self) -> bool:
        return not self.rows

    @property
    def failed(self) -> bool:
        return self.error is not None


def filter_and_project(
    table: str,
    header: Sequence[str],
    rows: Sequence[Mapping[str, Any]],
    filters: Mapping[str, Any] | None,
    projection: Sequence[str] | None,
) -> list[Row]:
    """Apply equality filters and a projection with uniform row shape.

    Unknown filter or projection columns raise ``ColumnNotFoundError``. Cells missing from a
    row are projected as ``None``.
    """
    known = set(header)
    for column in filters or {}:
        if column not in known:
            raise ColumnNotFoundError(table, column)
    for column in projection or ():
        if column not in known:
            raise ColumnNotFoundError(table, column)

    selected = [row for row in rows if all(row.get(column) == value for column, value in (filters or {}).items())]
    if projection is None:
        return [{column: row.get(column) for column in header} for row in selected]
    return [{column: row.get(column) for column in projection} for row in selected]


def safe_query(
    source: DataSource,
    table: str,
    filters: Mapping[str, Any] | None = None,
    projection: Sequence[str] | None = None,
) -> QueryResult:
    """Run a query, turning data source failures into an explicit empty result."""
    try:
        rows = source.query(table, filters, projection)
    except DataSourceError as exc:
        LOGGER.warning("datasource.query_failed", table=table, error=str(exc), error_type=type(exc).__name__)
        return QueryResult(table=table, error=str(exc))
    LOGGER.debug("datasource.query", table=table, filters=dict(filters or {}), row_count=len(rows))
    return QueryResult(table=table, rows=tuple(rows))
