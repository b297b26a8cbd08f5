from __future__ import annotations

import pytest

from tiangong_lca_upstream.core.models import FlowCandidate, SelectedProcess, StageError, SubRequirement
from tiangong_lca_upstream.recursion import (
    AllFlowsElementary,
    BoundaryReached,
    Continue,
    ContinueUpstream,
    LimitReached,
    NoCandidateProcess,
    NoRelevantFlows,
    NoSubRequirements,
    StageFailed,
    evaluate_termination,
    final_decision,
)
from tiangong_lca_upstream.selection import merge_relevance

SELECTED = SelectedProcess(candidate_id="P2", name="aluminium", location="CN", flow_count=8)
SUB = SubRequirement(content="alumina production", origin_flow_name="alumina", origin_flow_id="F1")
MERGED = merge_relevance([[FlowCandidate(name="alumina", id="F1", relevance="high")]])


@pytest.mark.parametrize(
    ("state", "expected"),
    [
        ({}, Continue()),
        ({"selection_complete": True, "selected_process": None}, NoCandidateProcess()),
        ({"selection_complete": True, "selected_process": SELECTED}, Continue()),
        ({"selected_process": SELECTED, "boundary_reached": True}, BoundaryReached(process_id="P2")),
        ({"selected_process": SELECTED, "merged_relevance": merge_relevance([])}, NoRelevantFlows()),
        ({"selected_process": SELECTED, "merged_relevance": MERGED, "all_elementary": True}, AllFlowsElementary()),
        ({"selected_process": SELECTED, "merged_relevance": MERGED, "sub_requirements": []}, NoSubRequirements()),
        ({"selected_process": SELECTED, "sub_requirements": [SUB]}, ContinueUpstream((SUB,))),
    ],
)
def test_evaluate_termination(state, expected):
    assert evaluate_termination(state) == expected


def test_sub_requirements_win_over_other_signals():
    state = {"boundary_reached": True, "all_elementary": True, "sub_requirements": [SUB]}
    assert isinstance(evaluate_termination(state), ContinueUpstream)


def test_final_decision_reports_failed_stage():
    error = StageError(stage="analyze_industry", message="boom")

    decision = final_decision({"selected_process": SELECTED}, [error])

    assert decision == StageFailed((error,))
    assert decision.stops_recursion
    assert not decision.natural
    assert final_decision({"boundary_reached": True}, [error]) == BoundaryReached()


def test_decisions_serialise_with_their_kind():
    assert Continue().as_dict() == {"kind": "continue"}
    assert LimitReached(reason="depth_limit").as_dict() == {"kind": "limit_reached", "reason": "depth_limit"}
    assert not Continue().stops_recursion
    assert NoSubRequirements().natural
