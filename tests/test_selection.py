from __future__ import annotations

import itertools

import pytest

from tiangong_lca_upstream.core.models import FlowCandidate, ScoreSheet
from tiangong_lca_upstream.selection import (
    SPATIAL_FIRST,
    TEMPORAL_FIRST,
    build_axis_grade,
    criteria_for,
    merge_relevance,
    reduce_samples,
    run_tournament,
    select_process,
)


def _sheet(candidate_id: str, technical: int, spatial: int, temporal: int, flow_count: int) -> ScoreSheet:
    return ScoreSheet(
        candidate_id=candidate_id,
        name=f"process {candidate_id}",
        location=None,
        flow_count=flow_count,
        technical=technical,
        spatial=spatial,
        temporal=temporal,
    )


@pytest.mark.parametrize(
    ("samples", "expected"),
    [
        ([2, 2, 3], 2),
        ([1, 3], 1),
        ([4], 4),
        ([5, 5, 5], 5),
        ([3, 4, 4, 3, 2], 3),
    ],
)
def test_reduce_samples_majority_with_lowest_tie_break(samples, expected):
    assert reduce_samples(samples) == expected
    assert reduce_samples(list(reversed(samples))) == expected


def test_reduce_samples_requires_samples():
    with pytest.raises(ValueError):
        reduce_samples([])


def test_build_axis_grade_keeps_sample_set():
    grade = build_axis_grade("P1", "spatial", [3, 1, 3])
    assert grade.value == 3
    assert grade.sample_set == (3, 1, 3)
    assert grade.axis == "spatial"


def test_tournament_filters_on_each_criterion_in_order():
    candidates = [_sheet("A", 1, 2, 3, 5), _sheet("B", 1, 1, 4, 2)]

    outcome = run_tournament(candidates, SPATIAL_FIRST)

    assert outcome.selected is not None
    assert outcome.selected.candidate_id == "B"
    assert outcome.rounds[0] == ("technical", 1, ["A", "B"])
    assert outcome.rounds[1] == ("spatial", 1, ["B"])
    assert not outcome.tie_broken


def test_temporal_first_ordering_changes_the_winner():
    candidates = [_sheet("A", 1, 2, 3, 5), _sheet("B", 1, 1, 4, 2)]
    assert select_process(candidates, TEMPORAL_FIRST).candidate_id == "A"


def test_flow_count_is_maximised():
    candidates = [_sheet("A", 2, 2, 2, 5), _sheet("B", 2, 2, 2, 9), _sheet("C", 3, 1, 1, 50)]
    assert select_process(candidates, SPATIAL_FIRST).candidate_id == "B"


def test_full_tie_resolves_to_first_in_input_order():
    candidates = [_sheet("X", 1, 1, 1, 3), _sheet("Y", 1, 1, 1, 3)]

    outcome = run_tournament(candidates, SPATIAL_FIRST)

    assert outcome.selected.candidate_id == "X"
    assert outcome.tie_broken


def test_empty_pool_selects_nothing():
    assert select_process([], SPATIAL_FIRST) is None


def test_selected_candidate_is_best_on_first_criterion():
    pool = [_sheet(str(index), t, s, m, f) for index, (t, s, m, f) in enumerate(itertools.product((2, 1), (3, 1), (1, 2), (4, 7)))]
    selected = select_process(pool, TEMPORAL_FIRST)
    assert selected.candidate_id in {sheet.candidate_id for sheet in pool}
    assert next(sheet for sheet in pool if sheet.candidate_id == selected.candidate_id).technical == 1


def test_criteria_for_defaults_to_spatial_first():
    assert criteria_for("RESULT_A") == TEMPORAL_FIRST
    assert criteria_for("RESULT_B") == SPATIAL_FIRST
    assert criteria_for(None) == SPATIAL_FIRST


def test_merge_relevance_keeps_highest_label():
    first = [FlowCandidate(name="flowX", id="X", relevance="high")]
    second = [FlowCandidate(name="flowX", id="X", relevance="low"), FlowCandidate(name="flowY", id="Y", relevance="medium")]

    merged = merge_relevance([first, second])

    assert {flow.id: flow.relevance for flow in merged.flows} == {"X": "high", "Y": "medium"}
    assert not merged.is_empty


def test_merge_relevance_is_commutative_and_idempotent():
    lists = [
        [FlowCandidate(name="a", id="1", relevance="low"), FlowCandidate(name="b", id="2", relevance="high")],
        [FlowCandidate(name="a2", id="1", relevance="low"), FlowCandidate(name="c", id="3", relevance="medium")],
        [FlowCandidate(name="b", id="2", relevance="medium")],
    ]
    merged = merge_relevance(lists)

    for permutation in itertools.permutations(lists):
        assert merge_relevance(permutation).flows == merged.flows
    assert merge_relevance([merged.flows]).flows == merged.flows
    assert [flow.id for flow in merged.flows] == ["2", "3", "1"]
    assert merged.flows[2].name == "a"


def test_merge_relevance_signals_empty():
    merged = merge_relevance([[], []])
    assert merged.is_empty
    assert len(merged) == 0
