"""Shared constant values used across the upstream exploration workflow."""

from __future__ import annotations

from typing import Final

PROCESS_ID_COLUMN: Final[str] = "process_UUID"
PROCESS_NAME_COLUMN: Final[str] = "process_name"
LOCATION_COLUMN: Final[str] = "location"
VALIDITY_START_COLUMN: Final[str] = "validity_start"
FLOW_COUNT_COLUMN: Final[str] = "flow_count"
TECHNICAL_TYPE_COLUMN: Final[str] = "technical_type"

FLOW_NAME_COLUMN: Final[str] = "flow_name"
FLOW_ID_COLUMN: Final[str] = "flow_UUID"
FLOW_TYPE_COLUMN: Final[str] = "flow_type"
DIRECTION_COLUMN: Final[str] = "Input/Output"
INPUT_DIRECTION: Final[str] = "Input"

INPUT_FLOW_COLUMNS: Final[tuple[str, ...]] = (
    FLOW_NAME_COLUMN,
    FLOW_ID_COLUMN,
    FLOW_TYPE_COLUMN,
)

ELEMENTARY_FLOW_MARKER: Final[str] = "elementary"

AXES: Final[tuple[str, ...]] = ("technical", "spatial", "temporal")
BEST_GRADE: Final[int] = 1
WORST_GRADE: Final[int] = 5

RELEVANCE_RANK: Final[dict[str, int]] = {"high": 0, "medium": 1, "low": 2}
