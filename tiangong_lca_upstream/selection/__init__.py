"""Grade consensus, relevance merging, and tournament selection."""

from .consensus import build_axis_grade, reduce_samples
from .relevance import MergedRelevance, merge_relevance
from .tournament import (
    SPATIAL_FIRST,
    TEMPORAL_FIRST,
    Criterion,
    TournamentOutcome,
    criteria_for,
    run_tournament,
    select_process,
)

__all__ = [
    "reduce_samples",
    "build_axis_grade",
    "MergedRelevance",
    "merge_relevance",
    "Criterion",
    "TournamentOutcome",
    "SPATIAL_FIRST",
    "TEMPORAL_FIRST",
    "criteria_for",
    "run_tournament",
    "select_process",
]
