"""Union of independently produced flow-relevance lists."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from tiangong_lca_upstream.core.constants import RELEVANCE_RANK
from tiangong_lca_upstream.core.models import FlowCandidate


@dataclass(slots=True, frozen=True)
class MergedRelevance:
    flows: tuple[FlowCandidate, ...]

    @property
    def is_empty(self) -> bool:
        return not self.flows

    def __len__(self) -> int:
        return len(self.flows)


def merge_relevance(lists: Iterable[Iterable[FlowCandidate]]) -> MergedRelevance:
    """Union by flow id, keeping the highest relevance label per flow.

    The result is independent of input order: flows are sorted by relevance then id, and
    same-id entries with equal relevance resolve to the lexicographically smallest name.
    """
    best: dict[str, FlowCandidate] = {}
    for flows in lists:
        for flow in flows:
            current = best.get(flow.id)
            if current is None or _preference(flow) < _preference(current):
                best[flow.id] = flow
    ordered = sorted(best.values(), key=lambda flow: (RELEVANCE_RANK[flow.relevance], flow.id))
    return MergedRelevance(flows=tuple(ordered))


def _preference(flow: FlowCandidate) -> tuple[int, str, bool]:
    return (RELEVANCE_RANK[flow.relevance], flow.name, flow.is_elementary)
