"""Shared data models."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Literal, Mapping

from .constants import (
    FLOW_COUNT_COLUMN,
    LOCATION_COLUMN,
    PROCESS_ID_COLUMN,
    PROCESS_NAME_COLUMN,
    TECHNICAL_TYPE_COLUMN,
    VALIDITY_START_COLUMN,
)

Axis = Literal["technical", "spatial", "temporal"]
Relevance = Literal["high", "medium", "low"]


@dataclass(slots=True, frozen=True)
class Requirement:
    raw_text: str
    process_spec: str
    technology_spec: str = ""
    location_spec: str = ""
    time_spec: str = ""

    def as_context(self) -> dict[str, str]:
        return {
            "process": self.process_spec,
            "technology": self.technology_spec,
            "location": self.location_spec,
            "time_frame": self.time_spec,
        }


@dataclass(slots=True, frozen=True)
class CandidateProcess:
    id: str
    name: str
    location: str | None = None
    validity_start: str | None = None
    flow_count: int = 0
    technical_type: str | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "CandidateProcess":
        return cls(
            id=str(row.get(PROCESS_ID_COLUMN) or "").strip(),
            name=str(row.get(PROCESS_NAME_COLUMN) or "").strip(),
            location=_optional_text(row.get(LOCATION_COLUMN)),
            validity_start=_optional_text(row.get(VALIDITY_START_COLUMN)),
            flow_count=coerce_flow_count(row.get(FLOW_COUNT_COLUMN)),
            technical_type=_optional_text(row.get(TECHNICAL_TYPE_COLUMN)),
        )

    def as_context(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True, frozen=True)
class AxisSamples:
    """Raw oracle samples collected for one candidate on one axis."""

    candidate_id: str
    axis: Axis
    samples: tuple[int, ...]


@dataclass(slots=True, frozen=True)
class AxisGrade:
    candidate_id: str
    axis: Axis
    value: int
    sample_set: tuple[int, ...] = ()


@dataclass(slots=True, frozen=True)
class ScoreSheet:
    candidate_id: str
    name: str
    location: str | None
    flow_count: int
    technical: int
    spatial: int
    temporal: int


@dataclass(slots=True, frozen=True)
class SelectedProcess:
    candidate_id: str
    name: str
    location: str | None
    flow_count: int

    @classmethod
    def from_sheet(cls, sheet: ScoreSheet) -> "SelectedProcess":
        return cls(
            candidate_id=sheet.candidate_id,
            name=sheet.name,
            location=sheet.location,
            flow_count=sheet.flow_count,
        )


@dataclass(slots=True, frozen=True)
class FlowCandidate:
    name: str
    id: str
    relevance: Relevance
    is_elementary: bool = False


@dataclass(slots=True, frozen=True)
class SubRequirement:
    content: str
    origin_flow_name: str
    origin_flow_id: str


@dataclass(slots=True)
class SettingsProfile:
    concurrency: int
    retry_attempts: int
    grading_samples: int
    profile_name: str


@dataclass(slots=True)
class StageError:
    """A stage failure recorded by the workflow engine instead of being raised."""

    stage: str
    message: str
    error_type: str = "Exception"
    details: dict[str, Any] = field(default_factory=dict)


def coerce_flow_count(value: Any) -> int:
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    text = str(value).strip()
    if not text:
        return 0
    try:
        return int(float(text))
    except ValueError:
        return 0


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None
