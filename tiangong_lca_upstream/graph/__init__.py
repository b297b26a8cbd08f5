"""Workflow graph engine public API."""

from .engine import TERMINAL, CompiledWorkflow, EngineState, WorkflowGraph, WorkflowRun
from .reducers import append, merge_set, merge_set_by, replace
from .waves import run_in_waves

__all__ = [
    "TERMINAL",
    "CompiledWorkflow",
    "EngineState",
    "WorkflowGraph",
    "WorkflowRun",
    "append",
    "merge_set",
    "merge_set_by",
    "replace",
    "run_in_waves",
]
