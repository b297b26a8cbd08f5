"""Recursive expansion of requirements into upstream sub-requirements.

One ``RecursionController`` owns one ``RunContext`` per top-level exploration. Every
requirement passes through ``admit`` before it is run; admission checks the visited canonical keys
before the depth and iteration caps, and records the key, all under one lock, so two
concurrent branches can never both admit the same requirement.

Two fan-out policies share that admission path:

``tree``
    every sub-requirement becomes its own recursive branch one level deeper; siblings run
    concurrently in waves of at most ``concurrency_limit`` branches.
``queue``
    sub-requirements are appended to a single FIFO queue processed one at a time; when the
    iteration cap stops the loop, the unprocessed items are reported as pending.
"""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Literal

from tiangong_lca_upstream.core.config import Settings, limits_for
from tiangong_lca_upstream.core.exceptions import MisconfigurationError
from tiangong_lca_upstream.core.logging import get_logger
from tiangong_lca_upstream.core.models import StageError
from tiangong_lca_upstream.graph.waves import run_in_waves

from .canonical import DEFAULT_KEY_LENGTH, canonical_key
from .report import ExplorationReport, Rejection, RunResult
from .termination import ContinueUpstream, LimitReached

LOGGER = get_logger(__name__)

Policy = Literal["tree", "queue"]
Runner = Callable[[str, int], Awaitable[RunResult]]

DEPTH_LIMIT = "depth_limit"
ITERATION_LIMIT = "iteration_limit"
DUPLICATE = "duplicate"
EMPTY = "empty_requirement"
_LIMIT_REASONS = frozenset({DEPTH_LIMIT, ITERATION_LIMIT})


@dataclass(slots=True)
class RunContext:
    """Mutable bookkeeping shared by every branch of one exploration."""

    visited_keys: set[str] = field(default_factory=set)
    iteration_count: int = 0
    admission_attempts: int = 0
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


@dataclass(slots=True, frozen=True)
class Admission:
    accepted: bool
    reason: str
    key: str = ""

    @property
    def limit_reached(self) -> bool:
        return self.reason in _LIMIT_REASONS

    @property
    def decision(self) -> LimitReached | None:
        return LimitReached(reason=self.reason) if self.limit_reached else None


class RecursionController:
    def __init__(
        self,
        runner: Runner,
        *,
        policy: Policy = "tree",
        max_depth: int | None = 3,
        max_iterations: int | None = None,
        key_length: int = DEFAULT_KEY_LENGTH,
        concurrency_limit: int = 5,
    ) -> None:
        if policy not in ("tree", "queue"):
            raise MisconfigurationError(f"Unknown recursion policy: {policy}")
        if policy == "tree" and max_depth is None and max_iterations is None:
            raise MisconfigurationError("Tree recursion needs a depth or iteration cap")
        if policy == "queue" and max_iterations is None:
            raise MisconfigurationError("Queue recursion needs an iteration cap")
        if key_length < 1:
            raise MisconfigurationError("Canonical key length must be positive")
        self._runner = runner
        self.policy = policy
        self.max_depth = max_depth
        self.max_iterations = max_iterations
        self._key_length = key_length
        self._concurrency = max(int(concurrency_limit), 1)

    @classmethod
    def from_settings(cls, runner: Runner, settings: Settings, *, mode: Policy | None = None) -> "RecursionController":
        policy = mode or settings.recursion_mode
        limits = limits_for(settings, policy)
        return cls(
            runner,
            policy=policy,
            max_depth=limits.max_depth,
            max_iterations=limits.max_iterations,
            key_length=settings.canonical_key_length,
            concurrency_limit=settings.profile.concurrency,
        )

    def new_context(self) -> RunContext:
        return RunContext()

    async def admit(self, context: RunContext, text: str, *, depth: int) -> Admission:
        """Atomically check the caps and the visited set, then record the requirement."""
        key = canonical_key(text, self._key_length)
        async with context.lock:
            context.admission_attempts += 1
            if not key:
                admission = Admission(accepted=False, reason=EMPTY)
            elif key in context.visited_keys:
                admission = Admission(accepted=False, reason=DUPLICATE, key=key)
            elif self.max_depth is not None and depth >= self.max_depth:
                admission = Admission(accepted=False, reason=DEPTH_LIMIT, key=key)
            elif self.max_iterations is not None and context.iteration_count >= self.max_iterations:
                admission = Admission(accepted=False, reason=ITERATION_LIMIT, key=key)
            else:
                context.visited_keys.add(key)
                context.iteration_count += 1
                admission = Admission(accepted=True, reason="admitted", key=key)

        if admission.limit_reached:
            LOGGER.info("recursion.limit_reached", reason=admission.reason, depth=depth, key=key)
        elif not admission.accepted:
            LOGGER.info("recursion.admission_rejected", reason=admission.reason, depth=depth, key=key)
        else:
            LOGGER.debug("recursion.admitted", depth=depth, key=key, iteration=context.iteration_count)
        return admission

    async def explore(self, requirement_text: str, *, context: RunContext | None = None) -> ExplorationReport:
        context = context or self.new_context()
        report = ExplorationReport(root_requirement=requirement_text, mode=self.policy)
        LOGGER.info(
            "recursion.started",
            policy=self.policy,
            max_depth=self.max_depth,
            max_iterations=self.max_iterations,
        )
        if self.policy == "tree":
            await self._expand_tree(context, report, requirement_text, 0)
        else:
            await self._drain_queue(context, report, requirement_text)
        LOGGER.info(
            "recursion.completed",
            policy=self.policy,
            runs=len(report.runs),
            rejections=len(report.rejections),
            pending=len(report.pending),
        )
        return report

    async def _expand_tree(self, context: RunContext, report: ExplorationReport, text: str, depth: int) -> None:
        admission = await self.admit(context, text, depth=depth)
        if not admission.accepted:
            report.limit = report.limit or admission.decision
            report.rejections.append(Rejection(requirement_text=text, depth=depth, reason=admission.reason))
            return
        result = await self._run(report, text, depth)
        if result is None or not isinstance(result.decision, ContinueUpstream):
            return
        children = list(result.decision.sub_requirements)
        outcomes = await run_in_waves(
            children,
            lambda sub: self._expand_tree(context, report, sub.content, depth + 1),
            limit=self._concurrency,
            label="recursion",
        )
        for sub, outcome in zip(children, outcomes):
            if isinstance(outcome, MisconfigurationError) or (
                isinstance(outcome, BaseException) and not isinstance(outcome, Exception)
            ):
                raise outcome
            if isinstance(outcome, Exception):
                report.errors.append(
                    StageError(
                        stage="recursion",
                        message=str(outcome),
                        error_type=type(outcome).__name__,
                        details={"depth": depth + 1, "origin_flow_id": sub.origin_flow_id},
                    )
                )

    async def _drain_queue(self, context: RunContext, report: ExplorationReport, text: str) -> None:
        queue: deque[tuple[str, int]] = deque([(text, 0)])
        while queue:
            item, depth = queue.popleft()
            admission = await self.admit(context, item, depth=depth)
            if not admission.accepted:
                if admission.reason == ITERATION_LIMIT:
                    report.limit = admission.decision
                    report.pending = self._unvisited(context, [item, *(pending for pending, _ in queue)])
                    return
                report.rejections.append(Rejection(requirement_text=item, depth=depth, reason=admission.reason))
                continue
            result = await self._run(report, item, depth)
            if result is not None and isinstance(result.decision, ContinueUpstream):
                queue.extend((sub.content, depth + 1) for sub in result.decision.sub_requirements)

    def _unvisited(self, context: RunContext, texts: list[str]) -> list[str]:
        """Queue items that would still be admitted, one per canonical key."""
        seen = set(context.visited_keys)
        pending: list[str] = []
        for text in texts:
            key = canonical_key(text, self._key_length)
            if key and key not in seen:
                seen.add(key)
                pending.append(text)
        return pending

    async def _run(self, report: ExplorationReport, text: str, depth: int) -> RunResult | None:
        try:
            result = await self._runner(text, depth)
        except MisconfigurationError:
            raise
        except Exception as exc:  # pylint: disable=broad-except
            LOGGER.error("recursion.run_failed", depth=depth, error=str(exc), error_type=type(exc).__name__)
            report.errors.append(StageError(stage="run", message=str(exc), error_type=type(exc).__name__, details={"depth": depth}))
            return None
        report.runs.append(result)
        if result.decision.stops_recursion:
            event = "recursion.natural_stop" if result.decision.natural else "recursion.stopped"
            LOGGER.info(event, decision=result.decision.kind, depth=depth)
        return result
