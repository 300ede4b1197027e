# tests/test_ai_core.py
from datetime import date

import pytest

from backend.app import ai_core
from backend.app.errors import SchemaMismatchError, UpstreamAPIError

CHART_PAYLOAD = {
    "title": "Tokenized Deposits",
    "timeColumns": ["2023", "2024", "2025"],
    "data": [
        {"title": "JPMorgan Chase", "isSwimlane": True, "entity": "JPMorgan Chase"},
        {"title": "JPM Coin pilot", "isSwimlane": False, "entity": "JPMorgan Chase",
         "bar": {"startCol": 2, "endCol": 3, "color": "blue"}},
    ],
}


class StaticClient:
    provider = "static"

    def __init__(self, payload):
        self.payload = payload
        self.requests = []

    def complete(self, request):
        self.requests.append(request)
        return self.payload


def _fake_call(payload, seen=None):
    async def mock_async_call(request, client=None):
        if seen is not None:
            seen.append(request)
        return payload
    return mock_async_call


@pytest.mark.asyncio
async def test_generate_chart_end_to_end_with_client():
    client = StaticClient(CHART_PAYLOAD)
    chart = await ai_core.generate_chart("Show the pilots", "research", client=client)
    assert chart.title == "Tokenized Deposits"
    assert chart.tasks()[0].bar.start_col == 2
    assert client.requests[0].name == "gantt_chart"
    assert client.requests[0].user_query.startswith('User Prompt: "Show the pilots"')


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [
    {"title": "x", "timeColumns": [], "data": CHART_PAYLOAD["data"]},
    {"title": "x", "timeColumns": ["2025"], "data": []},
])
async def test_generate_chart_empty_columns_or_rows(monkeypatch, payload):
    monkeypatch.setattr(ai_core, "_call_model_async", _fake_call(payload))
    with pytest.raises(SchemaMismatchError) as exc:
        await ai_core.generate_chart("p", "r")
    assert exc.value.message == ai_core.EMPTY_CHART_MESSAGE
    assert exc.value.status_code == 422


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [
    None,
    ["not", "an", "object"],
    {"title": "missing columns", "data": []},
    {"title": "bad rows", "timeColumns": ["2025"], "data": [{"title": "no flags"}]},
])
async def test_generate_chart_invalid_structure(monkeypatch, payload):
    monkeypatch.setattr(ai_core, "_call_model_async", _fake_call(payload))
    with pytest.raises(SchemaMismatchError) as exc:
        await ai_core.generate_chart("p", "r")
    assert exc.value.message == "Invalid chart data structure received from AI"


@pytest.mark.asyncio
async def test_upstream_error_propagates(monkeypatch):
    def failing_generate_json(request, client=None):
        raise UpstreamAPIError("API call failed with status: 500 - boom")

    monkeypatch.setattr(ai_core.llm_service, "generate_json", failing_generate_json)
    with pytest.raises(UpstreamAPIError):
        await ai_core.generate_chart("p", "r")


@pytest.mark.asyncio
async def test_analyze_task_uses_given_date(monkeypatch):
    seen = []
    payload = {"taskName": "JPM Coin pilot", "status": "In Progress", "facts": [], "assumptions": []}
    monkeypatch.setattr(ai_core, "_call_model_async", _fake_call(payload, seen))
    analysis = await ai_core.analyze_task("research", "JPM Coin pilot", "JPMorgan Chase", today=date(2025, 11, 13))
    assert analysis.status == "in-progress"
    assert "13 November 2025" in seen[0].system_instruction
    assert seen[0].max_output_tokens == 4096


@pytest.mark.asyncio
async def test_analyze_task_invalid_payload(monkeypatch):
    monkeypatch.setattr(ai_core, "_call_model_async", _fake_call({"status": "completed"}))
    with pytest.raises(SchemaMismatchError):
        await ai_core.analyze_task("r", "t", "e", today=date(2025, 1, 1))


@pytest.mark.asyncio
async def test_answer_question(monkeypatch):
    seen = []
    monkeypatch.setattr(ai_core, "_call_model_async", _fake_call({"answer": "Yes, per [a.md]."}, seen))
    answer = await ai_core.answer_question("r", "t", "e", "On track?", today=date(2025, 1, 1))
    assert answer.answer == "Yes, per [a.md]."
    assert seen[0].name == "task_chat"


@pytest.mark.asyncio
async def test_answer_question_missing_answer(monkeypatch):
    monkeypatch.setattr(ai_core, "_call_model_async", _fake_call({"reply": "x"}))
    with pytest.raises(SchemaMismatchError):
        await ai_core.answer_question("r", "t", "e", "q", today=date(2025, 1, 1))


def test_reference_date_from_env(monkeypatch):
    monkeypatch.setenv("GANTT_REFERENCE_DATE", "2025-11-13")
    assert ai_core.reference_date() == date(2025, 11, 13)


def test_reference_date_invalid_env_falls_back_to_today(monkeypatch):
    monkeypatch.setenv("GANTT_REFERENCE_DATE", "13/11/2025")
    assert ai_core.reference_date() == date.today()
    monkeypatch.delenv("GANTT_REFERENCE_DATE")
    assert ai_core.reference_date() == date.today()


def test_validate_chart_rejects_infinite_column():
    payload = {**CHART_PAYLOAD, "data": [
        {"title": "t", "isSwimlane": False, "entity": "e", "bar": {"startCol": float("inf"), "endCol": 2, "color": "blue"}},
    ]}
    with pytest.raises(SchemaMismatchError) as exc:
        ai_core.validate_chart(payload)
    assert exc.value.message == "Invalid chart data structure received from AI"


def test_chart_to_dict_is_camel_case():
    chart = ai_core.validate_chart(CHART_PAYLOAD)
    out = ai_core.chart_to_dict(chart)
    assert out["timeColumns"] == ["2023", "2024", "2025"]
    assert out["data"][0] == {"title": "JPMorgan Chase", "isSwimlane": True, "entity": "JPMorgan Chase", "bar": None}
    assert out["data"][1]["bar"] == {"startCol": 2, "endCol": 3, "color": "blue"}
