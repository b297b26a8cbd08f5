"""Recursion control, termination decisions and exploration reports."""

from .canonical import DEFAULT_KEY_LENGTH, canonical_key
from .controller import Admission, RecursionController, RunContext
from .report import ExplorationReport, Rejection, RunResult
from .termination import (
    AllFlowsElementary,
    BoundaryReached,
    Continue,
    ContinueUpstream,
    LimitReached,
    NoCandidateProcess,
    NoRelevantFlows,
    NoSubRequirements,
    StageFailed,
    TerminationDecision,
    evaluate_termination,
    final_decision,
)

__all__ = [
    "DEFAULT_KEY_LENGTH",
    "canonical_key",
    "Admission",
    "RecursionController",
    "RunContext",
    "ExplorationReport",
    "Rejection",
    "RunResult",
    "AllFlowsElementary",
    "BoundaryReached",
    "Continue",
    "ContinueUpstream",
    "LimitReached",
    "NoCandidateProcess",
    "NoRelevantFlows",
    "NoSubRequirements",
    "StageFailed",
    "TerminationDecision",
    "evaluate_termination",
    "final_decision",
]
