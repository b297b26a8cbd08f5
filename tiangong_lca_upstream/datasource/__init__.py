"""Tabular data sources supplying candidate process records."""

from .base import DataSource, QueryResult, Row, filter_and_project, safe_query
from .memory import InMemoryDataSource
from .workbook import WorkbookDataSource

__all__ = [
    "DataSource",
    "QueryResult",
    "Row",
    "filter_and_project",
    "safe_query",
    "InMemoryDataSource",
    "WorkbookDataSource",
]
