"""Upstream exploration workflow: one run per requirement, recursion across runs."""

from __future__ import annotations

import asyncio
from collections import defaultdict
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Mapping

import structlog

from tiangong_lca_upstream.core.config import Settings, get_settings
from tiangong_lca_upstream.core.constants import (
    AXES,
    DIRECTION_COLUMN,
    ELEMENTARY_FLOW_MARKER,
    FLOW_ID_COLUMN,
    FLOW_TYPE_COLUMN,
    INPUT_DIRECTION,
    INPUT_FLOW_COLUMNS,
    PROCESS_ID_COLUMN,
)
from tiangong_lca_upstream.core.exceptions import DataSourceError, MisconfigurationError, OracleError
from tiangong_lca_upstream.core.logging import get_logger
from tiangong_lca_upstream.core.models import (
    Axis,
    AxisSamples,
    CandidateProcess,
    FlowCandidate,
    Requirement,
    ScoreSheet,
    SubRequirement,
)
from tiangong_lca_upstream.datasource.base import DataSource, QueryResult, safe_query
from tiangong_lca_upstream.graph.engine import TERMINAL, CompiledWorkflow, WorkflowGraph
from tiangong_lca_upstream.graph.waves import run_in_waves
from tiangong_lca_upstream.oracle.base import Oracle, OracleRequest, consult
from tiangong_lca_upstream.oracle.schemas import (
    BoundaryJudgement,
    FlowRelevanceAnalysis,
    GradeJudgement,
    HeterogeneityAssessment,
    IndustryAnalysis,
    RequirementExtraction,
    SubRequirementProposal,
    TableSelection,
)
from tiangong_lca_upstream.recursion.controller import Policy, RecursionController
from tiangong_lca_upstream.recursion.report import ExplorationReport, RunResult
from tiangong_lca_upstream.recursion.termination import evaluate_termination, final_decision
from tiangong_lca_upstream.selection.consensus import build_axis_grade
from tiangong_lca_upstream.selection.relevance import merge_relevance
from tiangong_lca_upstream.selection.tournament import criteria_for, run_tournament

from .prompts import (
    BOUNDARY_PROMPT,
    FLOW_RELEVANCE_PROMPT,
    HETEROGENEITY_PROMPT,
    INDUSTRY_PROMPT,
    REQUIREMENT_EXTRACTION_PROMPT,
    SPATIAL_GRADING_PROMPT,
    SUB_REQUIREMENT_PROMPT,
    TABLE_SELECTION_PROMPT,
    TECHNICAL_GRADING_PROMPT,
    TEMPORAL_GRADING_PROMPT,
)
from .state import UpstreamState

LOGGER = get_logger(__name__)

GRADING_PROMPTS: dict[str, str] = {
    "technical": TECHNICAL_GRADING_PROMPT,
    "spatial": SPATIAL_GRADING_PROMPT,
    "temporal": TEMPORAL_GRADING_PROMPT,
}
GRADING_STAGES: tuple[str, ...] = tuple(f"grade_{axis}" for axis in AXES)
ANALYST_TEMPERATURE = 0.2


def is_elementary_flow(flow_type: Any) -> bool:
    """True for ILCD "Elementary flow" types; "Product flow", "Waste flow" and "non-elementary" are not."""
    return str(flow_type or "").strip().lower().startswith(ELEMENTARY_FLOW_MARKER)


def _requirement_facets(requirement: Requirement, axis: str) -> dict[str, str]:
    if axis == "technical":
        return {"process_requirement": requirement.process_spec, "technology_requirement": requirement.technology_spec}
    if axis == "spatial":
        return {"geography_requirement": requirement.location_spec}
    return {"time_requirement": requirement.time_spec}


def _candidates_from_rows(rows: Any) -> list[CandidateProcess]:
    candidates: list[CandidateProcess] = []
    seen: set[str] = set()
    for row in rows:
        candidate = CandidateProcess.from_row(row)
        if not candidate.id or candidate.id in seen:
            continue
        seen.add(candidate.id)
        candidates.append(candidate)
    return candidates


def _resolve_table(choice: str, tables: list[str], prefix: str) -> str:
    """Keep the oracle's choice when it names a real table, else the first table with ``prefix``."""
    cleaned = (choice or "").strip()
    if cleaned in tables:
        return cleaned
    for table in tables:
        if table.lower().startswith(prefix.lower()):
            if cleaned:
                LOGGER.warning("upstream.table_choice_unknown", chosen=cleaned, fallback=table)
            return table
    return ""


def _stop_or(next_stage: str) -> Callable[[Mapping[str, Any]], str]:
    def _route(state: Mapping[str, Any]) -> str:
        decision = evaluate_termination(state)
        if decision.stops_recursion:
            LOGGER.info("upstream.run_stopped", decision=decision.kind, depth=state.get("depth", 0))
            return TERMINAL
        return next_stage

    return _route


def _build_upstream_graph(
    *,
    oracle: Oracle,
    data_source: DataSource,
    settings: Settings,
) -> CompiledWorkflow:
    profile = settings.profile
    graph = WorkflowGraph(UpstreamState, name="upstream")

    async def _query(table: str, filters: Mapping[str, Any] | None = None, projection: Any = None) -> QueryResult:
        return await asyncio.to_thread(safe_query, data_source, table, filters, projection)

    async def extract_requirement(state: UpstreamState) -> UpstreamState:
        text = state["requirement_text"]
        extraction = await consult(
            oracle,
            OracleRequest(
                name="extract_requirement",
                task=REQUIREMENT_EXTRACTION_PROMPT,
                context={"requirement": text},
            ),
            RequirementExtraction,
        )
        requirement = Requirement(
            raw_text=text,
            process_spec=extraction.process.strip() or text.strip(),
            technology_spec=extraction.technology.strip(),
            location_spec=extraction.location.strip(),
            time_spec=extraction.time_frame.strip(),
        )
        LOGGER.info("upstream.requirement_extracted", process=requirement.process_spec, depth=state.get("depth", 0))
        return {"requirement": requirement}

    async def match_tables(state: UpstreamState) -> UpstreamState:
        requirement = state["requirement"]
        try:
            tables = await asyncio.to_thread(data_source.list_tables)
        except DataSourceError as exc:
            LOGGER.warning("upstream.list_tables_failed", error=str(exc))
            tables = []
        if not tables:
            LOGGER.warning("upstream.no_tables")
            return {"process_table": "", "flow_table": "", "candidates": []}

        selection = await consult(
            oracle,
            OracleRequest(
                name="match_tables",
                task=TABLE_SELECTION_PROMPT,
                context={"process_requirement": requirement.process_spec, "sheet_names": tables},
            ),
            TableSelection,
        )
        process_table = _resolve_table(selection.process_table, tables, settings.process_table_prefix)
        flow_table = _resolve_table(selection.flow_table, tables, settings.flow_table_prefix)

        candidates: list[CandidateProcess] = []
        if process_table:
            candidates = _candidates_from_rows((await _query(process_table)).rows)
        if not candidates:
            # matched sheet empty or unusable: pool every process sheet
            fallback_tables = [
                table
                for table in tables
                if table.lower().startswith(settings.process_table_prefix.lower()) and table != process_table
            ]
            pooled: list[dict[str, Any]] = []
            for table in fallback_tables:
                pooled.extend((await _query(table)).rows)
            candidates = _candidates_from_rows(pooled)
            LOGGER.info("upstream.candidate_fallback", tables=fallback_tables, candidates=len(candidates))
        LOGGER.info(
            "upstream.tables_matched",
            process_table=process_table,
            flow_table=flow_table,
            candidates=len(candidates),
        )
        return {"process_table": process_table, "flow_table": flow_table, "candidates": candidates}

    async def _sample_grade(axis: str, requirement: Requirement, candidate: CandidateProcess) -> int:
        judgement = await consult(
            oracle,
            OracleRequest(
                name=f"grade_{axis}",
                task=GRADING_PROMPTS[axis],
                context={**_requirement_facets(requirement, axis), "process_info": candidate.as_context()},
            ),
            GradeJudgement,
        )
        return judgement.grade

    def _grader(axis: Axis) -> Callable[[UpstreamState], Any]:
        async def grade(state: UpstreamState) -> UpstreamState:
            requirement = state["requirement"]
            candidates = state.get("candidates") or []
            jobs = [(candidate, index) for candidate in candidates for index in range(profile.grading_samples)]
            outcomes = await run_in_waves(
                jobs,
                lambda job: _sample_grade(axis, requirement, job[0]),
                limit=profile.concurrency,
                label=f"grade_{axis}",
            )
            collected: dict[str, list[int]] = {candidate.id: [] for candidate in candidates}
            for (candidate, _), outcome in zip(jobs, outcomes):
                if isinstance(outcome, MisconfigurationError) or (
                    isinstance(outcome, BaseException) and not isinstance(outcome, Exception)
                ):
                    raise outcome
                if isinstance(outcome, Exception):
                    LOGGER.warning("upstream.sample_dropped", axis=axis, candidate=candidate.id, error=str(outcome))
                    continue
                collected[candidate.id].append(outcome)

            samples: list[AxisSamples] = []
            for candidate in candidates:
                values = collected[candidate.id]
                if not values:
                    LOGGER.warning("upstream.candidate_excluded", axis=axis, candidate=candidate.id)
                    continue
                samples.append(AxisSamples(candidate_id=candidate.id, axis=axis, samples=tuple(values)))
            return {"axis_samples": samples}

        grade.__name__ = f"grade_{axis}"
        return grade

    async def evaluate_heterogeneity(state: UpstreamState) -> UpstreamState:
        assessment = await consult(
            oracle,
            OracleRequest(
                name="evaluate_heterogeneity",
                task=HETEROGENEITY_PROMPT,
                context={"process_info": state["requirement"].as_context()},
                temperature=ANALYST_TEMPERATURE,
            ),
            HeterogeneityAssessment,
        )
        return {"heterogeneity": assessment.heterogeneity}

    async def consolidate_grades(state: UpstreamState) -> UpstreamState:
        grouped: dict[tuple[str, str], list[int]] = defaultdict(list)
        for entry in state.get("axis_samples") or []:
            grouped[(entry.candidate_id, entry.axis)].extend(entry.samples)
        grades = [
            build_axis_grade(candidate_id, axis, samples)  # type: ignore[arg-type]
            for (candidate_id, axis), samples in grouped.items()
        ]
        by_candidate: dict[str, dict[str, int]] = defaultdict(dict)
        for grade in grades:
            by_candidate[grade.candidate_id][grade.axis] = grade.value

        sheets: list[ScoreSheet] = []
        for candidate in state.get("candidates") or []:
            values = by_candidate.get(candidate.id, {})
            missing = [axis for axis in AXES if axis not in values]
            if missing:
                LOGGER.warning("upstream.score_sheet_incomplete", candidate=candidate.id, missing=missing)
                continue
            sheets.append(
                ScoreSheet(
                    candidate_id=candidate.id,
                    name=candidate.name,
                    location=candidate.location,
                    flow_count=candidate.flow_count,
                    technical=values["technical"],
                    spatial=values["spatial"],
                    temporal=values["temporal"],
                )
            )
        LOGGER.info("upstream.grades_consolidated", grades=len(grades), score_sheets=len(sheets))
        return {"axis_grades": grades, "score_sheets": sheets}

    async def select_process(state: UpstreamState) -> UpstreamState:
        heterogeneity = state.get("heterogeneity")
        outcome = run_tournament(state.get("score_sheets") or [], criteria_for(heterogeneity))  # type: ignore[arg-type]
        selected = outcome.selected
        update: UpstreamState = {
            "selection_complete": True,
            "selected_process": selected,
            "tournament_rounds": outcome.rounds,
            "input_flows": [],
        }
        if selected is None:
            LOGGER.info("upstream.no_candidate_process", depth=state.get("depth", 0))
            return update
        LOGGER.info(
            "upstream.process_selected",
            process=selected.candidate_id,
            name=selected.name,
            heterogeneity=heterogeneity,
            tie_broken=outcome.tie_broken,
        )
        flow_table = state.get("flow_table") or ""
        if flow_table:
            result = await _query(
                flow_table,
                {PROCESS_ID_COLUMN: selected.candidate_id, DIRECTION_COLUMN: INPUT_DIRECTION},
                INPUT_FLOW_COLUMNS,
            )
            update["input_flows"] = [dict(row) for row in result.rows]
        return update

    async def judge_boundary(state: UpstreamState) -> UpstreamState:
        selected = state["selected_process"]
        judgement = await consult(
            oracle,
            OracleRequest(
                name="judge_boundary",
                task=BOUNDARY_PROMPT,
                context={"process_info": {"process_UUID": selected.candidate_id, "process_name": selected.name}},
                temperature=ANALYST_TEMPERATURE,
            ),
            BoundaryJudgement,
        )
        return {"boundary_reached": judgement.reaches_cradle}

    async def analyze_industry(state: UpstreamState) -> UpstreamState:
        selected = state["selected_process"]
        analysis = await consult(
            oracle,
            OracleRequest(
                name="analyze_industry",
                task=INDUSTRY_PROMPT,
                context={"process_UUID": selected.candidate_id, "process_name": selected.name, "location": selected.location},
                temperature=ANALYST_TEMPERATURE,
            ),
            IndustryAnalysis,
        )
        return {"industry": analysis.industry.strip()}

    async def analyze_flows(state: UpstreamState) -> UpstreamState:
        selected = state["selected_process"]
        input_flows = state.get("input_flows") or []
        analysis = await consult(
            oracle,
            OracleRequest(
                name="analyze_flows",
                task=FLOW_RELEVANCE_PROMPT,
                context={
                    "selected_process": {"process_UUID": selected.candidate_id, "process_name": selected.name},
                    "industry": state.get("industry", ""),
                    "input_flows": input_flows,
                },
                temperature=ANALYST_TEMPERATURE,
            ),
            FlowRelevanceAnalysis,
        )
        known_ids = {str(row.get(FLOW_ID_COLUMN)) for row in input_flows}
        flows = [
            FlowCandidate(name=item.flow_name.strip(), id=item.flow_id.strip(), relevance=item.relevance)
            for item in analysis.flows
            if item.flow_id.strip() and (not known_ids or item.flow_id.strip() in known_ids)
        ]
        if len(flows) < len(analysis.flows):
            LOGGER.debug("upstream.unknown_flows_dropped", dropped=len(analysis.flows) - len(flows))
        return {"relevance_lists": [flows]}

    async def merge_relevance_stage(state: UpstreamState) -> UpstreamState:
        lists = state.get("relevance_lists") or []
        failed = set(state.get("failed_stages") or ())
        if not lists and failed.issuperset(analysts):
            # an empty merge here would read as a natural "no relevant flows" stop
            raise OracleError(f"All {len(analysts)} relevance analysts failed")
        merged = merge_relevance(lists)
        LOGGER.info("upstream.relevance_merged", analysts=len(lists), flows=len(merged))
        return {"merged_relevance": merged}

    async def filter_flows(state: UpstreamState) -> UpstreamState:
        flow_types = {str(row.get(FLOW_ID_COLUMN)): row.get(FLOW_TYPE_COLUMN) for row in state.get("input_flows") or []}
        classified = [
            replace(flow, is_elementary=is_elementary_flow(flow_types.get(flow.id))) for flow in state["merged_relevance"].flows
        ]
        non_elementary = [flow for flow in classified if not flow.is_elementary]
        shortlist = non_elementary[: max(settings.shortlist_size, 1)]
        LOGGER.info(
            "upstream.flows_filtered",
            flows=len(classified),
            non_elementary=len(non_elementary),
            shortlisted=[flow.id for flow in shortlist],
        )
        return {
            "classified_flows": classified,
            "shortlist": shortlist,
            "all_elementary": bool(classified) and not non_elementary,
        }

    async def spawn_requirements(state: UpstreamState) -> UpstreamState:
        requirement = state["requirement"]
        shortlist = state.get("shortlist") or []
        proposal = await consult(
            oracle,
            OracleRequest(
                name="spawn_requirements",
                task=SUB_REQUIREMENT_PROMPT,
                context={
                    "downstream_requirement": requirement.as_context(),
                    "industry": state.get("industry", ""),
                    "flows": [{"flow_name": flow.name, "flow_id": flow.id, "relevance": flow.relevance} for flow in shortlist],
                },
                temperature=ANALYST_TEMPERATURE,
            ),
            SubRequirementProposal,
        )
        by_id = {flow.id: flow for flow in shortlist}
        sub_requirements: list[SubRequirement] = []
        seen: set[str] = set()
        for item in proposal.requirements:
            flow = by_id.get(item.flow_id.strip())
            content = item.content.strip()
            if flow is None or flow.id in seen or not content:
                continue
            seen.add(flow.id)
            sub_requirements.append(SubRequirement(content=content, origin_flow_name=flow.name, origin_flow_id=flow.id))
        missing = [flow.id for flow in shortlist if flow.id not in seen]
        if missing:
            LOGGER.warning("upstream.sub_requirements_missing", flows=missing)
        LOGGER.info("upstream.sub_requirements_spawned", count=len(sub_requirements), depth=state.get("depth", 0))
        return {"sub_requirements": sub_requirements}

    graph.add_stage("extract_requirement", extract_requirement)
    graph.add_stage("match_tables", match_tables)
    for axis in AXES:
        graph.add_stage(f"grade_{axis}", _grader(axis))  # type: ignore[arg-type]
    graph.add_stage("evaluate_heterogeneity", evaluate_heterogeneity)
    graph.add_stage("consolidate_grades", consolidate_grades)
    graph.add_stage("select_process", select_process)
    graph.add_stage("judge_boundary", judge_boundary)
    graph.add_stage("analyze_industry", analyze_industry)
    analyst_count = max(min(settings.relevance_analysts, profile.concurrency), 1)
    if analyst_count < settings.relevance_analysts:
        LOGGER.info("upstream.analysts_clamped", requested=settings.relevance_analysts, concurrency=profile.concurrency)
    analysts = graph.add_stage_instances("analyze_flows", analyze_flows, analyst_count)
    graph.add_stage("merge_relevance", merge_relevance_stage)
    graph.add_stage("filter_flows", filter_flows)
    graph.add_stage("spawn_requirements", spawn_requirements)

    graph.set_start("extract_requirement")
    graph.add_edge("extract_requirement", "match_tables")
    graph.add_fan_out("match_tables", [*GRADING_STAGES, "evaluate_heterogeneity"])
    graph.add_join([*GRADING_STAGES, "evaluate_heterogeneity"], "consolidate_grades")
    graph.add_edge("consolidate_grades", "select_process")
    graph.add_router("select_process", _stop_or("judge_boundary"), ["judge_boundary", TERMINAL])
    graph.add_router("judge_boundary", _stop_or("analyze_industry"), ["analyze_industry", TERMINAL])
    graph.add_fan_out("analyze_industry", analysts)
    if len(analysts) > 1:
        graph.add_join(analysts, "merge_relevance")
    else:
        graph.add_edge(analysts[0], "merge_relevance")
    graph.add_router("merge_relevance", _stop_or("filter_flows"), ["filter_flows", TERMINAL])
    graph.add_router("filter_flows", _stop_or("spawn_requirements"), ["spawn_requirements", TERMINAL])
    graph.add_edge("spawn_requirements", TERMINAL)
    return graph.compile()


def build_upstream_graph(
    oracle: Oracle,
    data_source: DataSource | None,
    settings: Settings | None = None,
) -> CompiledWorkflow:
    if oracle is None:
        raise MisconfigurationError("No oracle configured")
    if data_source is None:
        raise MisconfigurationError("No data source configured")
    return _build_upstream_graph(oracle=oracle, data_source=data_source, settings=settings or get_settings())


@dataclass(slots=True)
class UpstreamExplorer:
    """Facade that explores the upstream chain of a requirement via LangGraph runs."""

    oracle: Oracle
    data_source: DataSource | None
    settings: Settings | None = None
    _workflow: CompiledWorkflow | None = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        self.settings = self.settings or get_settings()
        self._workflow = build_upstream_graph(self.oracle, self.data_source, self.settings)

    async def run_requirement(self, requirement_text: str, depth: int = 0) -> RunResult:
        """Run the workflow once for ``requirement_text`` without recursing."""
        with structlog.contextvars.bound_contextvars(depth=depth):
            run = await self._workflow.run({"requirement_text": requirement_text, "depth": depth})  # type: ignore[union-attr]
        state = run.state
        decision = final_decision(state, run.errors)
        return RunResult(
            requirement_text=requirement_text,
            depth=depth,
            decision=decision,
            requirement=state.get("requirement"),
            selected_process=state.get("selected_process"),
            boundary_reached=bool(state.get("boundary_reached")),
            sub_requirements=list(state.get("sub_requirements") or []),
            errors=list(run.errors),
        )

    def controller(self, mode: Policy | None = None) -> RecursionController:
        return RecursionController.from_settings(self.run_requirement, self.settings or get_settings(), mode=mode)

    async def explore(self, requirement_text: str, *, mode: Policy | None = None) -> ExplorationReport:
        """Explore upstream from ``requirement_text`` with a fresh controller and visited set."""
        return await self.controller(mode).explore(requirement_text)
