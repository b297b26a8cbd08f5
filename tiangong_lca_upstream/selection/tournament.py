"""Lexicographic multi-criteria process selection."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Sequence

from tiangong_lca_upstream.core.logging import get_logger
from tiangong_lca_upstream.core.models import ScoreSheet, SelectedProcess

LOGGER = get_logger(__name__)

Direction = Literal["min", "max"]
Heterogeneity = Literal["RESULT_A", "RESULT_B"]


@dataclass(slots=True, frozen=True)
class Criterion:
    field: str
    direction: Direction = "min"

    def best(self, values: Sequence[int]) -> int:
        return min(values) if self.direction == "min" else max(values)


# RESULT_A: spatial heterogeneity very low and temporal heterogeneity very strong.
TEMPORAL_FIRST: tuple[Criterion, ...] = (
    Criterion("technical"),
    Criterion("temporal"),
    Criterion("spatial"),
    Criterion("flow_count", "max"),
)
SPATIAL_FIRST: tuple[Criterion, ...] = (
    Criterion("technical"),
    Criterion("spatial"),
    Criterion("temporal"),
    Criterion("flow_count", "max"),
)


def criteria_for(heterogeneity: Heterogeneity | None) -> tuple[Criterion, ...]:
    """Map the heterogeneity classification onto one of the two fixed orderings."""
    if heterogeneity == "RESULT_A":
        return TEMPORAL_FIRST
    return SPATIAL_FIRST


@dataclass(slots=True)
class TournamentOutcome:
    """Result of a tournament, with the surviving pool after each criterion."""

    selected: SelectedProcess | None
    rounds: list[tuple[str, int, list[str]]] = field(default_factory=list)
    tie_broken: bool = False


def run_tournament(candidates: Sequence[ScoreSheet], criteria: Sequence[Criterion]) -> TournamentOutcome:
    if not candidates:
        return TournamentOutcome(selected=None)
    pool = list(candidates)
    rounds: list[tuple[str, int, list[str]]] = []
    for criterion in criteria:
        if len(pool) == 1:
            break
        best_value = criterion.best([getattr(sheet, criterion.field) for sheet in pool])
        pool = [sheet for sheet in pool if getattr(sheet, criterion.field) == best_value]
        rounds.append((criterion.field, best_value, [sheet.candidate_id for sheet in pool]))
    tie_broken = len(pool) > 1
    if tie_broken:
        LOGGER.info(
            "tournament.tie_broken",
            remaining=[sheet.candidate_id for sheet in pool],
            rule="first_in_input_order",
        )
    return TournamentOutcome(selected=SelectedProcess.from_sheet(pool[0]), rounds=rounds, tie_broken=tie_broken)


def select_process(candidates: Sequence[ScoreSheet], criteria: Sequence[Criterion]) -> SelectedProcess | None:
    """Filter to the candidates tied for best value on each criterion in order.

    Stops as soon as one candidate remains. When every criterion is exhausted with several
    candidates still tied, the first of them in input order wins. Returns ``None`` only for an
    empty candidate set.
    """
    return run_tournament(candidates, criteria).selected
