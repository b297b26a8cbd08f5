"""Results of single runs and of a whole exploration."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

from tiangong_lca_upstream.core.models import Requirement, SelectedProcess, StageError, SubRequirement

from .termination import LimitReached, TerminationDecision


@dataclass(slots=True)
class RunResult:
    """Outcome of one workflow run for one requirement."""

    requirement_text: str
    depth: int
    decision: TerminationDecision
    requirement: Requirement | None = None
    selected_process: SelectedProcess | None = None
    boundary_reached: bool = False
    sub_requirements: list[SubRequirement] = field(default_factory=list)
    errors: list[StageError] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "requirement_text": self.requirement_text,
            "depth": self.depth,
            "decision": self.decision.as_dict(),
            "requirement": asdict(self.requirement) if self.requirement else None,
            "selected_process": asdict(self.selected_process) if self.selected_process else None,
            "boundary_reached": self.boundary_reached,
            "sub_requirements": [asdict(item) for item in self.sub_requirements],
            "errors": [asdict(error) for error in self.errors],
        }


@dataclass(slots=True, frozen=True)
class Rejection:
    requirement_text: str
    depth: int
    reason: str


@dataclass(slots=True)
class ExplorationReport:
    root_requirement: str
    mode: str
    runs: list[RunResult] = field(default_factory=list)
    rejections: list[Rejection] = field(default_factory=list)
    errors: list[StageError] = field(default_factory=list)
    pending: list[str] = field(default_factory=list)
    limit: LimitReached | None = None

    @property
    def more_pending(self) -> bool:
        return bool(self.pending)

    @property
    def selected_processes(self) -> list[SelectedProcess]:
        return [run.selected_process for run in self.runs if run.selected_process is not None]

    @property
    def sub_requirements(self) -> list[SubRequirement]:
        return [item for run in self.runs for item in run.sub_requirements]

    @property
    def all_errors(self) -> list[StageError]:
        return [*self.errors, *(error for run in self.runs for error in run.errors)]

    def as_dict(self) -> dict[str, Any]:
        return {
            "root_requirement": self.root_requirement,
            "mode": self.mode,
            "selected_processes": [asdict(item) for item in self.selected_processes],
            "sub_requirements": [asdict(item) for item in self.sub_requirements],
            "runs": [run.as_dict() for run in self.runs],
            "rejections": [asdict(item) for item in self.rejections],
            "errors": [asdict(error) for error in self.all_errors],
            "pending": list(self.pending),
            "more_pending": self.more_pending,
            "limit": self.limit.as_dict() if self.limit else None,
        }
