"""In-memory data source over plain row mappings."""

from __future__ import annotations

from typing import Any, Mapping, Sequence

from tiangong_lca_upstream.core.exceptions import TableNotFoundError

from .base import Row, filter_and_project


class InMemoryDataSource:
    def __init__(self, tables: Mapping[str, Sequence[Mapping[str, Any]]]) -> None:
        self._tables: dict[str, list[dict[str, Any]]] = {name: [dict(row) for row in rows] for name, rows in tables.items()}

    def list_tables(self) -> list[str]:
        return list(self._tables)

    def query(
        self,
        table: str,
        filters: Mapping[str, Any] | None = None,
        projection: Sequence[str] | None = None,
    ) -> list[Row]:
        if table not in self._tables:
            raise TableNotFoundError(table)
        rows = self._tables[table]
        header: dict[str, None] = {}
        for row in rows:
            header.update(dict.fromkeys(row))
        return filter_and_project(table, list(header), rows, filters, projection)
