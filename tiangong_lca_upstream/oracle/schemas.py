"""Structured output schemas expected from the oracle, one per stage."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

RelevanceLabel = Literal["high", "medium", "low"]


class _OracleModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class RequirementExtraction(_OracleModel):
    process: str = Field(validation_alias=AliasChoices("process", "Process"))
    technology: str = Field(default="", validation_alias=AliasChoices("technology", "Technology"))
    location: str = Field(default="", validation_alias=AliasChoices("location", "geographicLocation"))
    time_frame: str = Field(default="", validation_alias=AliasChoices("time_frame", "timeFrame"))


class TableSelection(_OracleModel):
    process_table: str = Field(validation_alias=AliasChoices("process_table", "selected_process_sheet"))
    flow_table: str = Field(validation_alias=AliasChoices("flow_table", "selected_flow_sheet"))


class GradeJudgement(_OracleModel):
    grade: int = Field(ge=1, le=5)
    reasoning: str = ""


class HeterogeneityAssessment(_OracleModel):
    heterogeneity: Literal["RESULT_A", "RESULT_B"]


class BoundaryJudgement(_OracleModel):
    reaches_cradle: bool = Field(validation_alias=AliasChoices("reaches_cradle", "whether_reach_cradle"))

    @field_validator("reaches_cradle", mode="before")
    @classmethod
    def _yes_no(cls, value: Any) -> Any:
        if isinstance(value, str) and value.strip().lower() in {"yes", "no"}:
            return value.strip().lower() == "yes"
        return value


class IndustryAnalysis(_OracleModel):
    industry: str = Field(validation_alias=AliasChoices("industry", "process_industry"))


class FlowRelevanceItem(_OracleModel):
    flow_name: str
    flow_id: str = Field(validation_alias=AliasChoices("flow_id", "flow_UUID"))
    relevance: RelevanceLabel = Field(validation_alias=AliasChoices("relevance", "industry_relevance"))


class FlowRelevanceAnalysis(_OracleModel):
    flows: list[FlowRelevanceItem] = Field(
        default_factory=list,
        validation_alias=AliasChoices("flows", "industry_specific_flows"),
    )


class ProposedRequirement(_OracleModel):
    flow_name: str
    flow_id: str = Field(validation_alias=AliasChoices("flow_id", "flow_UUID"))
    content: str = Field(validation_alias=AliasChoices("content", "new_demand"))


class SubRequirementProposal(_OracleModel):
    requirements: list[ProposedRequirement] = Field(
        default_factory=list,
        validation_alias=AliasChoices("requirements", "new_demands"),
    )
