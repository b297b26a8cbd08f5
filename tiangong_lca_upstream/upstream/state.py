"""State schema for one upstream exploration run."""

from typing import Annotated, Any

from tiangong_lca_upstream.core.models import (
    AxisGrade,
    AxisSamples,
    CandidateProcess,
    FlowCandidate,
    Requirement,
    ScoreSheet,
    SelectedProcess,
    SubRequirement,
)
from tiangong_lca_upstream.graph.engine import EngineState
from tiangong_lca_upstream.graph.reducers import append
from tiangong_lca_upstream.selection.relevance import MergedRelevance


class UpstreamState(EngineState, total=False):
    requirement_text: str
    depth: int
    requirement: Requirement
    process_table: str
    flow_table: str
    candidates: list[CandidateProcess]
    # written concurrently by the three graders
    axis_samples: Annotated[list[AxisSamples], append]
    heterogeneity: str
    axis_grades: list[AxisGrade]
    score_sheets: list[ScoreSheet]
    selection_complete: bool
    selected_process: SelectedProcess | None
    tournament_rounds: list[tuple[str, int, list[str]]]
    input_flows: list[dict[str, Any]]
    boundary_reached: bool
    industry: str
    # one list per flow analyst instance
    relevance_lists: Annotated[list[list[FlowCandidate]], append]
    merged_relevance: MergedRelevance
    classified_flows: list[FlowCandidate]
    shortlist: list[FlowCandidate]
    all_elementary: bool
    sub_requirements: list[SubRequirement]
