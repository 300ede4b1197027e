# tests/test_models.py
import pytest
from pydantic import ValidationError

from backend.app.models import (
    ChartBar,
    GanttChart,
    TaskAnalysis,
    TaskIdentifier,
    TaskQuestion,
    TodayPositionRequest,
)

CHART = {
    "title": "Regulatory Roadmap",
    "timeColumns": ["2023", " 2024 ", "2025"],
    "data": [
        {"title": "Regulators", "isSwimlane": True, "entity": "Regulators"},
        {"title": "Rule published", "isSwimlane": False, "entity": "Regulators",
         "bar": {"startCol": 2, "endCol": 3, "color": "blue"}},
        {"title": "Unknown date", "isSwimlane": False, "entity": "Regulators",
         "bar": {"startCol": None, "endCol": None, "color": "green"}},
    ],
}


def test_chart_parses_camel_case():
    chart = GanttChart.model_validate(CHART)
    assert chart.time_columns == ["2023", "2024", "2025"]
    assert len(chart.tasks()) == 2
    assert chart.data[1].bar.start_col == 2
    assert chart.data[1].has_bar is True
    assert chart.data[2].has_bar is False
    assert chart.data[0].has_bar is False


def test_chart_dumps_back_to_wire_shape():
    dumped = GanttChart.model_validate(CHART).model_dump(by_alias=True)
    assert dumped["timeColumns"] == ["2023", "2024", "2025"]
    assert dumped["data"][1]["bar"] == {"startCol": 2, "endCol": 3, "color": "blue"}
    assert dumped["data"][0]["isSwimlane"] is True


@pytest.mark.parametrize("raw, expected", [
    (3, 3),
    (3.0, 3),
    ("4", 4),
    (" 2.0 ", 2),
    ("", None),
    ("n/a", None),
    (None, None),
    (True, None),
])
def test_bar_column_coercion(raw, expected):
    assert ChartBar.model_validate({"startCol": raw}).start_col == expected


@pytest.mark.parametrize("raw", [float("inf"), float("-inf"), float("nan"), "1e999", "NaN"])
def test_bar_column_rejects_non_finite(raw):
    with pytest.raises(ValidationError):
        ChartBar.model_validate({"startCol": raw})


def test_bar_color_defaults():
    assert ChartBar.model_validate({"startCol": 1, "endCol": 2}).color == "default"
    assert ChartBar.model_validate({"startCol": 1, "color": "  "}).color == "default"
    assert ChartBar.model_validate({"startCol": 1, "color": None}).color == "default"


def test_chart_missing_fields_raises():
    with pytest.raises(ValidationError):
        GanttChart.model_validate({"title": "x", "data": []})
    with pytest.raises(ValidationError):
        GanttChart.model_validate({"title": "x", "timeColumns": ["2025"], "data": [{"title": "t"}]})


@pytest.mark.parametrize("raw, expected", [
    ("completed", "completed"),
    ("In Progress", "in-progress"),
    ("not_started", "not-started"),
    ("NOT-STARTED", "not-started"),
    ("N/A", "n/a"),
    ("delayed", "n/a"),
    (None, "n/a"),
])
def test_analysis_status_normalized(raw, expected):
    analysis = TaskAnalysis.model_validate({"taskName": "T", "status": raw})
    assert analysis.status == expected


def test_analysis_items_with_urls():
    analysis = TaskAnalysis.model_validate({
        "taskName": "Basel III endgame",
        "startDate": "Q3 2025",
        "endDate": None,
        "status": "in-progress",
        "facts": [{"fact": "Proposal released", "source": "[federalreserve.gov]", "url": "https://federalreserve.gov"}],
        "assumptions": None,
        "rationale": "On track",
    })
    assert analysis.facts[0].url == "https://federalreserve.gov"
    assert analysis.assumptions == []
    dumped = analysis.model_dump(by_alias=True)
    assert dumped["taskName"] == "Basel III endgame"
    assert dumped["startDate"] == "Q3 2025"


def test_task_identifier_strips_and_requires_values():
    ident = TaskIdentifier.model_validate({"taskName": "  Launch ", "entity": "Bank", "sessionId": "abc"})
    assert ident.task_name == "Launch"
    assert ident.session_id == "abc"
    with pytest.raises(ValidationError):
        TaskIdentifier.model_validate({"taskName": "   ", "entity": "Bank"})


def test_task_question_requires_question():
    with pytest.raises(ValidationError):
        TaskQuestion.model_validate({"taskName": "Launch", "entity": "Bank", "question": " "})
    q = TaskQuestion.model_validate({"taskName": "Launch", "entity": "Bank", "question": " Why? "})
    assert q.question == "Why?"
    assert q.session_id is None


def test_today_request_parses_iso_date():
    req = TodayPositionRequest.model_validate({"timeColumns": ["Nov 2025"], "referenceDate": "2025-11-13"})
    assert req.reference_date.isoformat() == "2025-11-13"
    assert TodayPositionRequest.model_validate({}).time_columns == []
