"""Shared fixtures: a scripted oracle and an in-memory LCA workbook."""

from __future__ import annotations

from typing import Any, Callable

import pytest

from tiangong_lca_upstream.core.config import Settings
from tiangong_lca_upstream.datasource import InMemoryDataSource
from tiangong_lca_upstream.oracle.base import OracleRequest

Handler = Callable[[OracleRequest], Any]

PROCESS_ROWS = [
    {
        "process_UUID": "P1",
        "process_name": "aluminium production ; aluminium, primary, ingot ; alumina ; generic ; 2018",
        "location": "GLO",
        "validity_start": "2018",
        "flow_count": 12,
        "technical_type": "generic",
    },
    {
        "process_UUID": "P2",
        "process_name": "aluminium production ; aluminium, primary, ingot ; alumina ; Hall-Heroult ; 2016",
        "location": "CN",
        "validity_start": "2016",
        "flow_count": 8,
        "technical_type": "Hall-Heroult",
    },
]

FLOW_ROWS = [
    {"process_UUID": "P2", "flow_name": "alumina", "flow_UUID": "F1", "flow_type": "Product flow", "Input/Output": "Input"},
    {"process_UUID": "P2", "flow_name": "electricity", "flow_UUID": "F2", "flow_type": "Product flow", "Input/Output": "Input"},
    {"process_UUID": "P2", "flow_name": "water", "flow_UUID": "F3", "flow_type": "Elementary flow", "Input/Output": "Input"},
    {"process_UUID": "P2", "flow_name": "aluminium", "flow_UUID": "F9", "flow_type": "Product flow", "Input/Output": "Output"},
    {"process_UUID": "P1", "flow_name": "alumina", "flow_UUID": "F1", "flow_type": "Product flow", "Input/Output": "Input"},
]

# technical, spatial, temporal per candidate: both tie on technical, P2 wins on spatial
GRADES = {
    "P1": {"technical": 1, "spatial": 2, "temporal": 3},
    "P2": {"technical": 1, "spatial": 1, "temporal": 4},
}


class FakeOracle:
    """Answers each request through the handler registered under its name."""

    def __init__(self, handlers: dict[str, Handler]) -> None:
        self.handlers = handlers
        self.calls: list[OracleRequest] = []

    async def invoke(self, request: OracleRequest, output_schema: type) -> Any:
        self.calls.append(request)
        handler = self.handlers.get(request.name)
        if handler is None:
            raise AssertionError(f"Unexpected oracle request: {request.name}")
        return handler(request)

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call.name == name)


def _grade(axis: str) -> Handler:
    def handler(request: OracleRequest) -> dict[str, Any]:
        candidate_id = request.context["process_info"]["id"]
        return {"grade": GRADES[candidate_id][axis], "reasoning": "scripted"}

    return handler


def _spawn(request: OracleRequest) -> dict[str, Any]:
    return {
        "new_demands": [
            {
                "flow_name": flow["flow_name"],
                "flow_UUID": flow["flow_id"],
                "new_demand": f"Carbon footprint of {flow['flow_name']} production in China, 2020",
            }
            for flow in request.context["flows"]
        ]
    }


def default_handlers() -> dict[str, Handler]:
    return {
        "extract_requirement": lambda request: {
            "Process": "aluminium ingot production",
            "Technology": "Hall-Heroult",
            "geographicLocation": "CN",
            "timeFrame": "2020",
        },
        "match_tables": lambda request: {
            "selected_process_sheet": "process_aluminium",
            "selected_flow_sheet": "flow_aluminium",
        },
        "grade_technical": _grade("technical"),
        "grade_spatial": _grade("spatial"),
        "grade_temporal": _grade("temporal"),
        "evaluate_heterogeneity": lambda request: {"heterogeneity": "RESULT_B"},
        "judge_boundary": lambda request: {"whether_reach_cradle": "No"},
        "analyze_industry": lambda request: {"process_industry": "non-ferrous metals"},
        "analyze_flows": lambda request: {
            "industry_specific_flows": [
                {"flow_name": "alumina", "flow_UUID": "F1", "industry_relevance": "high"},
                {"flow_name": "electricity", "flow_UUID": "F2", "industry_relevance": "medium"},
                {"flow_name": "water", "flow_UUID": "F3", "industry_relevance": "low"},
            ]
        },
        "spawn_requirements": _spawn,
    }


@pytest.fixture
def handlers() -> dict[str, Handler]:
    return default_handlers()


@pytest.fixture
def oracle(handlers: dict[str, Handler]) -> FakeOracle:
    return FakeOracle(handlers)


@pytest.fixture
def data_source() -> InMemoryDataSource:
    return InMemoryDataSource({"process_aluminium": PROCESS_ROWS, "flow_aluminium": FLOW_ROWS})


@pytest.fixture
def settings() -> Settings:
    return Settings(
        openai_api_key=None,
        grading_samples=3,
        concurrency_limit=5,
        relevance_analysts=3,
        shortlist_size=3,
        max_depth=3,
        max_iterations=10,
    )
