"""Majority-vote consensus over redundant oracle samples."""

from __future__ import annotations

from collections import Counter
from typing import Sequence

from tiangong_lca_upstream.core.logging import get_logger
from tiangong_lca_upstream.core.models import Axis, AxisGrade

LOGGER = get_logger(__name__)


def reduce_samples(samples: Sequence[int]) -> int:
    """Collapse samples into one grade: the mode, with ties going to the lowest (best) grade."""
    if not samples:
        raise ValueError("Consensus needs at least one sample")
    counts = Counter(samples)
    top = max(counts.values())
    return min(value for value, count in counts.items() if count == top)


def build_axis_grade(candidate_id: str, axis: Axis, samples: Sequence[int]) -> AxisGrade:
    value = reduce_samples(samples)
    if len(set(samples)) > 1:
        LOGGER.debug(
            "consensus.disagreement",
            candidate=candidate_id,
            axis=axis,
            samples=list(samples),
            value=value,
        )
    return AxisGrade(candidate_id=candidate_id, axis=axis, value=value, sample_set=tuple(samples))
