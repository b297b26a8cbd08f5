from __future__ import annotations

from types import SimpleNamespace

import httpx
import pytest
from openai import BadRequestError

from conftest import FakeOracle
from tiangong_lca_upstream.core.config import Settings
from tiangong_lca_upstream.core.exceptions import MisconfigurationError, OracleError, SchemaMismatchError
from tiangong_lca_upstream.core.json_utils import parse_json_response
from tiangong_lca_upstream.oracle import (
    BoundaryJudgement,
    GradeJudgement,
    OpenAIOracle,
    OracleRequest,
    SubRequirementProposal,
    TableSelection,
    consult,
)

REQUEST = OracleRequest(name="grade_spatial", task="Grade the process.", context={"process_info": {"id": "P1"}})


def _oracle(result):
    def handler(request):
        if isinstance(result, Exception):
            raise result
        return result

    return FakeOracle({REQUEST.name: handler})


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "raw",
    [
        GradeJudgement(grade=2, reasoning="close"),
        {"grade": 2, "reasoning": "close"},
        '{"grade": 2, "reasoning": "close"}',
        '<think>hmm</think>\n```json\n{"grade": 2, "reasoning": "close"}\n```',
    ],
)
async def test_consult_accepts_models_mappings_and_json_text(raw):
    judgement = await consult(_oracle(raw), REQUEST, GradeJudgement)
    assert judgement == GradeJudgement(grade=2, reasoning="close")


@pytest.mark.asyncio
@pytest.mark.parametrize("raw", [{"grade": 9}, {"reasoning": "no grade"}, "not json at all", ["a", "list"]])
async def test_consult_rejects_results_outside_the_schema(raw):
    with pytest.raises(SchemaMismatchError) as excinfo:
        await consult(_oracle(raw), REQUEST, GradeJudgement)
    assert excinfo.value.request_name == "grade_spatial"


@pytest.mark.asyncio
async def test_consult_wraps_invocation_failures():
    with pytest.raises(OracleError):
        await consult(_oracle(RuntimeError("connection reset")), REQUEST, GradeJudgement)


@pytest.mark.asyncio
async def test_consult_lets_misconfiguration_through():
    with pytest.raises(MisconfigurationError):
        await consult(_oracle(MisconfigurationError("no key")), REQUEST, GradeJudgement)


def test_schemas_accept_workbook_tool_field_names():
    assert BoundaryJudgement.model_validate({"whether_reach_cradle": "Yes"}).reaches_cradle is True
    assert BoundaryJudgement.model_validate({"whether_reach_cradle": " no "}).reaches_cradle is False
    assert BoundaryJudgement.model_validate({"reaches_cradle": True}).reaches_cradle is True
    selection = TableSelection.model_validate({"selected_process_sheet": "process_a", "selected_flow_sheet": "flow_a"})
    assert (selection.process_table, selection.flow_table) == ("process_a", "flow_a")
    proposal = SubRequirementProposal.model_validate(
        {"new_demands": [{"flow_name": "alumina", "flow_UUID": "F1", "new_demand": "alumina production"}]}
    )
    assert proposal.requirements[0].flow_id == "F1"
    assert proposal.requirements[0].content == "alumina production"


def test_request_context_renders_as_json():
    request = OracleRequest(name="extract_requirement", task="t", context={"requirement": "铝锭"})
    assert request.render_context() == '{"requirement": "铝锭"}'


def test_openai_oracle_needs_an_api_key():
    with pytest.raises(MisconfigurationError):
        OpenAIOracle(Settings(openai_api_key=None))


def test_openai_output_text_extraction():
    assert OpenAIOracle._extract_output(SimpleNamespace(output_text='{"grade": 1}')) == '{"grade": 1}'
    response = SimpleNamespace(
        output_text="",
        output=[
            SimpleNamespace(type="reasoning", content=[]),
            SimpleNamespace(type="message", content=[SimpleNamespace(type="output_text", text='{"grade": 3}')]),
        ],
    )
    assert OpenAIOracle._extract_output(response) == '{"grade": 3}'


@pytest.mark.asyncio
async def test_openai_oracle_sends_task_and_context():
    captured: dict = {}

    async def create(**kwargs):
        captured.update(kwargs)
        return SimpleNamespace(output_text='{"grade": 1, "reasoning": "exact"}')

    client = SimpleNamespace(responses=SimpleNamespace(create=create))
    oracle = OpenAIOracle(Settings(openai_api_key=None, openai_model="gpt-test"), client=client)

    judgement = await consult(oracle, REQUEST, GradeJudgement)

    assert judgement.grade == 1
    assert captured["model"] == "gpt-test"
    system, user = captured["input"]
    assert system["content"][0]["text"].startswith("Grade the process.")
    assert user["content"][0]["text"] == '{"process_info": {"id": "P1"}}'
    assert captured["text"] == {"format": {"type": "json_object"}}
    assert "temperature" not in captured


def test_json_payload_is_recovered_from_surrounding_prose():
    assert parse_json_response('Here you go: {"grade": 4} hope this helps') == {"grade": 4}
    assert parse_json_response('```json\n// scripted\n[1, 2]\n```') == [1, 2]
    with pytest.raises(OracleError):
        parse_json_response("<think>{\"grade\": 1}</think> no payload")


def _failing_client(error: Exception) -> tuple[SimpleNamespace, list[dict]]:
    calls: list[dict] = []

    async def create(**kwargs):
        calls.append(kwargs)
        raise error

    return SimpleNamespace(responses=SimpleNamespace(create=create)), calls


@pytest.mark.asyncio
async def test_openai_oracle_retries_timeouts_then_gives_up():
    client, calls = _failing_client(httpx.ReadTimeout("read timed out"))
    settings = Settings(openai_api_key=None, max_retries=3, retry_backoff=0.0)

    with pytest.raises(OracleError, match=r"failed after 3 attempt\(s\)") as excinfo:
        await OpenAIOracle(settings, client=client).invoke(REQUEST, GradeJudgement)

    assert len(calls) == settings.profile.retry_attempts == 3
    assert isinstance(excinfo.value.__cause__, httpx.ReadTimeout)


@pytest.mark.asyncio
async def test_openai_oracle_does_not_retry_rejected_requests():
    request = httpx.Request("POST", "https://api.openai.com/v1/responses")
    rejection = BadRequestError("bad schema", response=httpx.Response(400, request=request), body=None)
    client, calls = _failing_client(rejection)

    with pytest.raises(OracleError, match="was rejected"):
        await OpenAIOracle(Settings(openai_api_key=None, max_retries=3, retry_backoff=0.0), client=client).invoke(
            REQUEST, GradeJudgement
        )

    assert len(calls) == 1
