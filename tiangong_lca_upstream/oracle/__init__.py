"""Oracle protocol, output schemas, and the OpenAI-backed implementation."""

from .base import Oracle, OracleRequest, consult
from .openai_oracle import OpenAIOracle
from .schemas import (
    BoundaryJudgement,
    FlowRelevanceAnalysis,
    FlowRelevanceItem,
    GradeJudgement,
    HeterogeneityAssessment,
    IndustryAnalysis,
    ProposedRequirement,
    RequirementExtraction,
    SubRequirementProposal,
    TableSelection,
)

__all__ = [
    "Oracle",
    "OracleRequest",
    "consult",
    "OpenAIOracle",
    "BoundaryJudgement",
    "FlowRelevanceAnalysis",
    "FlowRelevanceItem",
    "GradeJudgement",
    "HeterogeneityAssessment",
    "IndustryAnalysis",
    "ProposedRequirement",
    "RequirementExtraction",
    "SubRequirementProposal",
    "TableSelection",
]
