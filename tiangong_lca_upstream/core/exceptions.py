"""Custom exception hierarchy for the upstream exploration workflow."""

from __future__ import annotations


class UpstreamExplorerError(Exception):
    """Base error for the Tiangong upstream exploration workflow."""


class MisconfigurationError(UpstreamExplorerError):
    """Raised when the workflow cannot run with the supplied configuration."""


class WorkflowConfigurationError(MisconfigurationError):
    """Raised when a workflow graph is wired incorrectly."""


class OracleError(UpstreamExplorerError):
    """Raised when the reasoning oracle fails to produce a usable result."""


class SchemaMismatchError(OracleError):
    """Raised when an oracle result does not match the expected output schema."""

    def __init__(self, request_name: str, errors: list[str]) -> None:
        self.request_name = request_name
        self.errors = errors
        message = f"{request_name} returned a result that does not match its schema:\n- " + "\n- ".join(errors)
        super().__init__(message)


class DataSourceError(UpstreamExplorerError):
    """Raised when the tabular data source cannot answer a query."""


class TableNotFoundError(DataSourceError):
    """Raised when the requested table does not exist."""

    def __init__(self, table: str) -> None:
        self.table = table
        super().__init__(f"Table '{table}' not found")


class ColumnNotFoundError(DataSourceError):
    """Raised when a filter or projection references an unknown column."""

    def __init__(self, table: str, column: str) -> None:
        self.table = table
        self.column = column
        super().__init__(f"Column '{column}' not found in table '{table}'")
