import asyncio
from typing import Annotated

import pytest

from tiangong_lca_upstream.core.exceptions import MisconfigurationError, WorkflowConfigurationError
from tiangong_lca_upstream.graph import TERMINAL, EngineState, WorkflowGraph, append, merge_set_by, replace, run_in_waves
from tiangong_lca_upstream.graph.reducers import merge_set


class DemoState(EngineState, total=False):
    value: int
    items: Annotated[list[str], append]


def _emit(label: str):
    async def stage(state):
        return {"items": [label]}

    return stage


def _fail(message: str):
    async def stage(state):
        raise RuntimeError(message)

    return stage


@pytest.mark.asyncio
async def test_fan_out_runs_concurrently_and_join_waits_for_all():
    observed: dict[str, list[str]] = {}

    async def collect(state):
        observed["items"] = sorted(state.get("items") or [])
        return {"value": len(state.get("items") or [])}

    graph = WorkflowGraph(DemoState, name="demo")
    graph.add_stage("start", _emit("start"))
    workers = graph.add_stage_instances("worker", _emit("worker"), 3)
    graph.add_stage("collect", collect)
    graph.set_start("start")
    graph.add_fan_out("start", workers)
    graph.add_join(workers, "collect")

    run = await graph.compile().run({})

    assert workers == ["worker_1", "worker_2", "worker_3"]
    assert observed["items"] == ["start", "worker", "worker", "worker"]
    assert run.state["value"] == 4
    assert not run.failed


@pytest.mark.asyncio
async def test_router_picks_destination_from_state():
    async def decide(state):
        return {"value": 7}

    graph = WorkflowGraph(DemoState)
    graph.add_stage("decide", decide)
    graph.add_stage("big", _emit("big"))
    graph.add_stage("small", _emit("small"))
    graph.set_start("decide")
    graph.add_router("decide", lambda state: "big" if state["value"] > 5 else "small", ["big", "small", TERMINAL])

    run = await graph.compile().run({})

    assert run.state["items"] == ["big"]


@pytest.mark.asyncio
async def test_router_may_stop_the_run():
    graph = WorkflowGraph(DemoState)
    graph.add_stage("decide", _emit("decide"))
    graph.add_stage("next", _emit("next"))
    graph.set_start("decide")
    graph.add_router("decide", lambda state: TERMINAL, ["next", TERMINAL])

    run = await graph.compile().run({})

    assert run.state["items"] == ["decide"]


@pytest.mark.asyncio
async def test_failed_stage_halts_its_branch_only():
    async def slow_sibling(state):
        await asyncio.sleep(0.01)
        return {"items": ["sibling"]}

    graph = WorkflowGraph(DemoState)
    graph.add_stage("start", _emit("start"))
    graph.add_stage("broken", _fail("boom"))
    graph.add_stage("after_broken", _emit("after_broken"))
    graph.add_stage("sibling", slow_sibling)
    graph.set_start("start")
    graph.add_fan_out("start", ["broken", "sibling"])
    graph.add_edge("broken", "after_broken")

    run = await graph.compile().run({})

    assert run.failed
    assert [error.stage for error in run.errors] == ["broken"]
    assert run.errors[0].error_type == "RuntimeError"
    assert run.state["failed_stages"] == ["broken"]
    assert "after_broken" not in run.state["items"]
    assert "sibling" in run.state["items"]


@pytest.mark.asyncio
async def test_join_still_fires_when_a_source_failed():
    graph = WorkflowGraph(DemoState)
    graph.add_stage("start", _emit("start"))
    graph.add_stage("ok", _emit("ok"))
    graph.add_stage("broken", _fail("boom"))
    graph.add_stage("merge", _emit("merge"))
    graph.set_start("start")
    graph.add_fan_out("start", ["ok", "broken"])
    graph.add_join(["ok", "broken"], "merge")

    run = await graph.compile().run({})

    assert "merge" in run.state["items"]
    assert len(run.errors) == 1


@pytest.mark.asyncio
async def test_misconfiguration_is_not_captured():
    async def misconfigured(state):
        raise MisconfigurationError("no data source")

    graph = WorkflowGraph(DemoState)
    graph.add_stage("start", misconfigured)
    graph.set_start("start")

    with pytest.raises(MisconfigurationError):
        await graph.compile().run({})


@pytest.mark.asyncio
async def test_router_returning_undeclared_destination_raises():
    graph = WorkflowGraph(DemoState)
    graph.add_stage("start", _emit("start"))
    graph.add_stage("allowed", _emit("allowed"))
    graph.set_start("start")
    graph.add_router("start", lambda state: "elsewhere", ["allowed", TERMINAL])

    with pytest.raises(WorkflowConfigurationError):
        await graph.compile().run({})


def test_wiring_errors_are_reported_at_compile_time():
    graph = WorkflowGraph(DemoState)
    graph.add_stage("start", _emit("start"))
    graph.set_start("start")
    graph.add_edge("start", "missing")
    with pytest.raises(WorkflowConfigurationError):
        graph.compile()

    with pytest.raises(WorkflowConfigurationError):
        graph.add_join(["start"], "start")
    with pytest.raises(WorkflowConfigurationError):
        graph.add_stage("start", _emit("again"))


def test_unreachable_stage_is_reported():
    graph = WorkflowGraph(DemoState)
    graph.add_stage("start", _emit("start"))
    graph.add_stage("orphan", _emit("orphan"))
    graph.set_start("start")
    with pytest.raises(WorkflowConfigurationError):
        graph.compile()


def test_sync_stage_is_rejected():
    graph = WorkflowGraph(DemoState)
    with pytest.raises(WorkflowConfigurationError):
        graph.add_stage("sync", lambda state: {})


def test_schema_without_engine_fields_is_rejected():
    from typing import TypedDict

    class Bare(TypedDict, total=False):
        value: int

    with pytest.raises(WorkflowConfigurationError):
        WorkflowGraph(Bare)


def test_reducers():
    assert append(["a"], ["b", "c"]) == ["a", "b", "c"]
    assert append(None, None) == []
    assert replace(["old"], ["new"]) == ["new"]
    by_id = merge_set_by(lambda item: item["id"])
    assert by_id([{"id": 1, "v": "a"}], [{"id": 1, "v": "b"}, {"id": 2, "v": "c"}]) == [{"id": 1, "v": "a"}, {"id": 2, "v": "c"}]
    assert merge_set(["x"], ["x", "y"]) == ["x", "y"]


@pytest.mark.asyncio
async def test_waves_keep_order_and_barrier():
    active = 0
    peak = 0
    finished: list[int] = []

    async def worker(item: int) -> int:
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.001 * (5 - item % 5))
        active -= 1
        finished.append(item)
        if item == 3:
            raise ValueError("bad item")
        return item * 10

    results = await run_in_waves(list(range(7)), worker, limit=2)

    assert peak <= 2
    assert [result for result in results if not isinstance(result, BaseException)] == [0, 10, 20, 40, 50, 60]
    assert isinstance(results[3], ValueError)
    # every item of wave n finishes before any item of wave n+1
    assert sorted(finished[:2]) == [0, 1]
    assert sorted(finished[2:4]) == [2, 3]
