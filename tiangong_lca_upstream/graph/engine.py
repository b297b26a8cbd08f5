"""Named-stage workflow graphs compiled onto LangGraph.

Stages are async callables from the accumulated run state to a partial state update. Edges are
either unconditional (``add_edge``/``add_fan_out``), fan-in joins that wait for every source
(``add_join``), or routers that pick the next stage at runtime from a declared set of
destinations (``add_router``). A stage that raises is recorded in the run state rather than
aborting the run: siblings already in flight finish normally, and the failed stage's own
outgoing edges lead to ``TERMINAL``. ``MisconfigurationError`` is the exception; it always
aborts the run.

Fields written by concurrently running stages must declare a reducer in the state schema, e.g.
``Annotated[list[X], append]`` (see ``reducers``).
"""

import inspect
import time
from collections import defaultdict
from dataclasses import dataclass
from typing import Annotated, Any, Awaitable, Callable, Mapping, Sequence, TypedDict

from langgraph.graph import END, StateGraph

from tiangong_lca_upstream.core.exceptions import MisconfigurationError, WorkflowConfigurationError
from tiangong_lca_upstream.core.logging import get_logger
from tiangong_lca_upstream.core.models import StageError

from .reducers import append, merge_set

LOGGER = get_logger(__name__)

TERMINAL = END

StageFn = Callable[[Mapping[str, Any]], Awaitable[Mapping[str, Any] | None]]
RouterFn = Callable[[Mapping[str, Any]], str]


class EngineState(TypedDict, total=False):
    errors: Annotated[list[StageError], append]
    failed_stages: Annotated[list[str], merge_set]


@dataclass(slots=True)
class WorkflowRun:
    state: dict[str, Any]
    errors: list[StageError]

    @property
    def failed(self) -> bool:
        return bool(self.errors)


class WorkflowGraph:
    """Declarative graph of named async stages."""

    def __init__(self, state_schema: type, *, name: str = "workflow") -> None:
        annotations = getattr(state_schema, "__annotations__", {})
        missing = [field for field in EngineState.__annotations__ if field not in annotations]
        if missing:
            raise WorkflowConfigurationError(f"State schema {state_schema.__name__} is missing engine fields: {', '.join(missing)}")
        self.name = name
        self._state_schema = state_schema
        self._stages: dict[str, StageFn] = {}
        self._edges: dict[str, list[str]] = defaultdict(list)
        self._terminal_sources: set[str] = set()
        self._joins: list[tuple[tuple[str, ...], str]] = []
        self._routers: dict[str, tuple[RouterFn, tuple[str, ...]]] = {}
        self._start: str | None = None

    @property
    def stage_names(self) -> list[str]:
        return list(self._stages)

    def add_stage(self, name: str, stage: StageFn) -> "WorkflowGraph":
        if not name or name == TERMINAL:
            raise WorkflowConfigurationError(f"Invalid stage name: {name!r}")
        if name in self._stages:
            raise WorkflowConfigurationError(f"Stage '{name}' is already registered")
        if not inspect.iscoroutinefunction(stage):
            raise WorkflowConfigurationError(f"Stage '{name}' must be an async callable")
        self._stages[name] = stage
        return self

    def add_stage_instances(self, name: str, stage: StageFn, count: int) -> list[str]:
        """Register ``count`` instances of one stage, named ``<name>_1`` .. ``<name>_<count>``."""
        if count < 1:
            raise WorkflowConfigurationError(f"Stage '{name}' needs at least one instance")
        names = [f"{name}_{index}" for index in range(1, count + 1)]
        for instance_name in names:
            self.add_stage(instance_name, stage)
        return names

    def set_start(self, name: str) -> "WorkflowGraph":
        self._start = name
        return self

    def add_edge(self, source: str, target: str) -> "WorkflowGraph":
        if source in self._routers:
            raise WorkflowConfigurationError(f"Stage '{source}' already routes conditionally")
        if target == TERMINAL:
            self._terminal_sources.add(source)
        elif target not in self._edges[source]:
            self._edges[source].append(target)
        return self

    def add_fan_out(self, source: str, targets: Sequence[str]) -> "WorkflowGraph":
        for target in targets:
            self.add_edge(source, target)
        return self

    def add_join(self, sources: Sequence[str], target: str) -> "WorkflowGraph":
        """Run ``target`` once every stage in ``sources`` has finished."""
        unique_sources = tuple(dict.fromkeys(sources))
        if len(unique_sources) < 2:
            raise WorkflowConfigurationError(f"Join into '{target}' needs at least two sources")
        self._joins.append((unique_sources, target))
        return self

    def add_router(self, source: str, router: RouterFn, destinations: Sequence[str]) -> "WorkflowGraph":
        if source in self._edges or source in self._terminal_sources or source in self._routers:
            raise WorkflowConfigurationError(f"Stage '{source}' already has outgoing edges")
        if not destinations:
            raise WorkflowConfigurationError(f"Router on '{source}' declares no destinations")
        self._routers[source] = (router, tuple(dict.fromkeys(destinations)))
        return self

    def compile(self) -> "CompiledWorkflow":
        self._validate()
        graph = StateGraph(self._state_schema)
        for name, stage in self._stages.items():
            graph.add_node(name, _guard_stage(name, stage))
        graph.set_entry_point(self._start)

        joined_sources = {source for sources, _ in self._joins for source in sources}
        for source, targets in self._edges.items():
            if not targets:
                continue
            graph.add_conditional_edges(source, _unconditional_route(source, tuple(targets)), [*targets, END])
        for sources, target in self._joins:
            graph.add_edge(list(sources), target)
        for source, (router, destinations) in self._routers.items():
            path_map = list(dict.fromkeys([*destinations, END]))
            graph.add_conditional_edges(source, _guarded_route(source, router, destinations), path_map)
        for name in self._stages:
            has_outgoing = bool(self._edges.get(name)) or name in self._routers or name in joined_sources
            if name in self._terminal_sources or not has_outgoing:
                graph.add_edge(name, END)

        recursion_limit = max(25, 2 * len(self._stages) + 2)
        return CompiledWorkflow(graph.compile(), name=self.name, recursion_limit=recursion_limit)

    def _validate(self) -> None:
        if self._start is None:
            raise WorkflowConfigurationError(f"Workflow '{self.name}' has no start stage")
        known = set(self._stages)
        if self._start not in known:
            raise WorkflowConfigurationError(f"Start stage '{self._start}' is not registered")
        referenced: list[str] = list(self._terminal_sources)
        for source, targets in self._edges.items():
            referenced.append(source)
            referenced.extend(targets)
        for sources, target in self._joins:
            referenced.extend(sources)
            referenced.append(target)
        for source, (_, destinations) in self._routers.items():
            referenced.append(source)
            referenced.extend(destination for destination in destinations if destination != TERMINAL)
        unknown = sorted({name for name in referenced if name not in known})
        if unknown:
            raise WorkflowConfigurationError(f"Workflow '{self.name}' references unknown stages: {', '.join(unknown)}")
        unreachable = sorted(known - self._reachable())
        if unreachable:
            raise WorkflowConfigurationError(f"Workflow '{self.name}' has unreachable stages: {', '.join(unreachable)}")

    def _reachable(self) -> set[str]:
        successors: dict[str, set[str]] = defaultdict(set)
        for source, targets in self._edges.items():
            successors[source].update(targets)
        for source, (_, destinations) in self._routers.items():
            successors[source].update(destination for destination in destinations if destination != TERMINAL)
        for sources, target in self._joins:
            for source in sources:
                successors[source].add(target)
        reached = {self._start}
        frontier = [self._start]
        while frontier:
            for target in successors.get(frontier.pop(), ()):
                if target not in reached:
                    reached.add(target)
                    frontier.append(target)
        return reached


class CompiledWorkflow:
    """Executable form of a ``WorkflowGraph``."""

    def __init__(self, app: Any, *, name: str, recursion_limit: int) -> None:
        self._app = app
        self.name = name
        self._recursion_limit = recursion_limit

    async def run(self, initial_state: Mapping[str, Any]) -> WorkflowRun:
        started = time.perf_counter()
        LOGGER.info("workflow.run_started", workflow=self.name)
        final = await self._app.ainvoke(dict(initial_state), config={"recursion_limit": self._recursion_limit})
        state = dict(final or {})
        errors = list(state.get("errors") or [])
        LOGGER.info(
            "workflow.run_completed",
            workflow=self.name,
            error_count=len(errors),
            seconds=round(time.perf_counter() - started, 3),
        )
        return WorkflowRun(state=state, errors=errors)


def _guard_stage(name: str, stage: StageFn) -> StageFn:
    async def _run(state: Mapping[str, Any]) -> dict[str, Any]:
        started = time.perf_counter()
        LOGGER.debug("workflow.stage_started", stage=name)
        try:
            update = await stage(state)
        except MisconfigurationError:
            raise
        except Exception as exc:  # pylint: disable=broad-except
            LOGGER.error("workflow.stage_failed", stage=name, error=str(exc), error_type=type(exc).__name__)
            return {
                "errors": [StageError(stage=name, message=str(exc), error_type=type(exc).__name__)],
                "failed_stages": [name],
            }
        LOGGER.debug("workflow.stage_completed", stage=name, seconds=round(time.perf_counter() - started, 3))
        return dict(update or {})

    _run.__name__ = name
    return _run


def _stage_failed(state: Mapping[str, Any], stage: str) -> bool:
    return stage in (state.get("failed_stages") or ())


def _unconditional_route(source: str, targets: tuple[str, ...]) -> Callable[[Mapping[str, Any]], str | list[str]]:
    def _route(state: Mapping[str, Any]) -> str | list[str]:
        if _stage_failed(state, source):
            LOGGER.info("workflow.branch_halted", stage=source)
            return END
        if len(targets) == 1:
            return targets[0]
        return list(targets)

    return _route


def _guarded_route(source: str, router: RouterFn, destinations: tuple[str, ...]) -> Callable[[Mapping[str, Any]], str]:
    allowed = set(destinations)

    def _route(state: Mapping[str, Any]) -> str:
        if _stage_failed(state, source):
            LOGGER.info("workflow.branch_halted", stage=source)
            return END
        destination = router(state)
        if destination not in allowed:
            raise WorkflowConfigurationError(
                f"Router on '{source}' returned '{destination}', expected one of: {', '.join(destinations)}"
            )
        return destination

    return _route
