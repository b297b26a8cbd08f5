"""Stop/continue decisions evaluated on the state of an upstream run."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, ClassVar, Mapping, Sequence, Union

from tiangong_lca_upstream.core.models import StageError, SubRequirement


class _Decision:
    __slots__ = ()

    kind: ClassVar[str]
    stops_recursion: ClassVar[bool] = True
    # limit stops are logged apart from natural stops
    natural: ClassVar[bool] = True

    def as_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, **asdict(self)}  # type: ignore[call-overload]


@dataclass(slots=True, frozen=True)
class Continue(_Decision):
    kind: ClassVar[str] = "continue"
    stops_recursion: ClassVar[bool] = False


@dataclass(slots=True, frozen=True)
class ContinueUpstream(_Decision):
    sub_requirements: tuple[SubRequirement, ...]

    kind: ClassVar[str] = "continue_upstream"
    stops_recursion: ClassVar[bool] = False


@dataclass(slots=True, frozen=True)
class BoundaryReached(_Decision):
    """The selected process is a raw-material extraction point."""

    process_id: str | None = None

    kind: ClassVar[str] = "boundary_reached"


@dataclass(slots=True, frozen=True)
class NoCandidateProcess(_Decision):
    kind: ClassVar[str] = "no_candidate_process"


@dataclass(slots=True, frozen=True)
class NoRelevantFlows(_Decision):
    kind: ClassVar[str] = "no_relevant_flows"


@dataclass(slots=True, frozen=True)
class AllFlowsElementary(_Decision):
    kind: ClassVar[str] = "all_flows_elementary"


@dataclass(slots=True, frozen=True)
class NoSubRequirements(_Decision):
    kind: ClassVar[str] = "no_sub_requirements"


@dataclass(slots=True, frozen=True)
class LimitReached(_Decision):
    reason: str

    kind: ClassVar[str] = "limit_reached"
    natural: ClassVar[bool] = False


@dataclass(slots=True, frozen=True)
class StageFailed(_Decision):
    errors: tuple[StageError, ...]

    kind: ClassVar[str] = "stage_failed"
    natural: ClassVar[bool] = False


TerminationDecision = Union[
    Continue,
    ContinueUpstream,
    BoundaryReached,
    NoCandidateProcess,
    NoRelevantFlows,
    AllFlowsElementary,
    NoSubRequirements,
    LimitReached,
    StageFailed,
]


def evaluate_termination(state: Mapping[str, Any]) -> TerminationDecision:
    """Classify the run state; checks follow the order in which stages produce their outputs."""
    sub_requirements = state.get("sub_requirements")
    if sub_requirements:
        return ContinueUpstream(tuple(sub_requirements))
    if state.get("boundary_reached"):
        selected = state.get("selected_process")
        return BoundaryReached(process_id=getattr(selected, "candidate_id", None))
    if state.get("selection_complete") and state.get("selected_process") is None:
        return NoCandidateProcess()
    merged = state.get("merged_relevance")
    if merged is not None and merged.is_empty:
        return NoRelevantFlows()
    if state.get("all_elementary"):
        return AllFlowsElementary()
    if "sub_requirements" in state:
        return NoSubRequirements()
    return Continue()


def final_decision(state: Mapping[str, Any], errors: Sequence[StageError] = ()) -> TerminationDecision:
    """Decision for a finished run; a run that halted on a failed stage reports the failure."""
    decision = evaluate_termination(state)
    if isinstance(decision, Continue) and errors:
        return StageFailed(tuple(errors))
    return decision
