"""Shared core utilities for the Tiangong LCA upstream exploration workflow."""

from .config import RecursionLimits, Settings, get_settings, limits_for
from .exceptions import (
    ColumnNotFoundError,
    DataSourceError,
    MisconfigurationError,
    OracleError,
    SchemaMismatchError,
    TableNotFoundError,
    UpstreamExplorerError,
    WorkflowConfigurationError,
)
from .logging import configure_logging, get_logger
from .models import (
    AxisGrade,
    AxisSamples,
    CandidateProcess,
    FlowCandidate,
    Requirement,
    ScoreSheet,
    SelectedProcess,
    SettingsProfile,
    StageError,
    SubRequirement,
)

__all__ = [
    "Settings",
    "SettingsProfile",
    "RecursionLimits",
    "get_settings",
    "limits_for",
    "configure_logging",
    "get_logger",
    "Requirement",
    "CandidateProcess",
    "AxisSamples",
    "AxisGrade",
    "ScoreSheet",
    "SelectedProcess",
    "FlowCandidate",
    "SubRequirement",
    "StageError",
    "UpstreamExplorerError",
    "MisconfigurationError",
    "WorkflowConfigurationError",
    "OracleError",
    "SchemaMismatchError",
    "DataSourceError",
    "TableNotFoundError",
    "ColumnNotFoundError",
]
