# tests/test_e2e.py
import json
from io import BytesIO

import pytest
from docx import Document
from fastapi.testclient import TestClient

from backend.app import main
from backend.app.doc_engine import DOCX_MIME_TYPE
from backend.app.main import app
from backend.app.services import llm_service
from backend.app.services import prompt_builder

client = TestClient(app)

CHART = {
    "title": "Stablecoin Rollout",
    "timeColumns": ["2023", "2024", "2025"],
    "data": [
        {"title": "Regulatory Drivers", "isSwimlane": True, "entity": "Regulatory Drivers"},
        {"title": "MiCA in force", "isSwimlane": False, "entity": "Regulatory Drivers",
         "bar": {"startCol": 2, "endCol": 3, "color": "blue"}},
    ],
}
ANALYSIS = {
    "taskName": "MiCA in force",
    "startDate": "2024",
    "endDate": "2024",
    "status": "completed",
    "facts": [{"fact": "MiCA applies from 2024", "source": "[eur-lex.europa.eu]", "url": "https://eur-lex.europa.eu"}],
    "assumptions": [],
    "summary": "In force.",
}


class ScriptedGeminiSession:
    """Stands in for requests.Session: answers generateContent by response schema."""

    def __init__(self):
        self.payloads = []

    def post(self, url, **kwargs):
        payload = kwargs["json"]
        self.payloads.append(payload)
        schema = payload["generationConfig"]["responseSchema"]
        if schema == prompt_builder.GANTT_SCHEMA:
            body = CHART
        elif schema == prompt_builder.ANALYSIS_SCHEMA:
            body = ANALYSIS
        else:
            body = {"answer": "Yes, it applies from 2024 [eur-lex.europa.eu]."}
        return _Resp({"candidates": [{"content": {"parts": [{"text": json.dumps(body)}]}}]})


class _Resp:
    status_code = 200
    ok = True

    def __init__(self, body):
        self._body = body
        self.text = json.dumps(body)

    def json(self):
        return self._body


@pytest.fixture
def gemini(monkeypatch):
    session = ScriptedGeminiSession()
    monkeypatch.setattr(llm_service, "get_client", lambda provider=None: llm_service.GeminiClient(api_key="test-key", session=session))
    monkeypatch.setenv("GANTT_REFERENCE_DATE", "2025-11-13")
    main.research_store.clear()
    yield session
    main.research_store.clear()


def _docx(text) -> bytes:
    doc = Document()
    doc.add_paragraph(text)
    buf = BytesIO()
    doc.save(buf)
    return buf.getvalue()


def test_upload_chart_analysis_chat_flow(gemini):
    files = [
        ("researchFiles", ("regulation.docx", _docx("MiCA applies from 2024 [eur-lex.europa.eu]"), DOCX_MIME_TYPE)),
        ("researchFiles", ("notes.md", b"# Notes\nStablecoin issuers must register.", "text/markdown")),
    ]
    r = client.post("/generate-chart", data={"prompt": "Regulatory timeline"}, files=files)
    assert r.status_code == 200
    chart = r.json()
    assert chart["timeColumns"] == CHART["timeColumns"]
    session_id = r.headers["X-Research-Session"]

    # the corpus sent to the model carries both files in name order
    query = gemini.payloads[0]["contents"][0]["parts"][0]["text"]
    assert query.startswith('User Prompt: "Regulatory timeline"')
    assert query.index("--- Start of file: notes.md ---") < query.index("--- Start of file: regulation.docx ---")
    assert "MiCA applies from 2024" in query

    # bar lands in the "2024" column, marker in 2025
    layout = client.post("/api/v1/visualization/gantt", json=chart).json()
    assert (layout["bars"][0]["x0"], layout["bars"][0]["x1"]) == (1, 2)
    assert chart["timeColumns"][layout["bars"][0]["x0"]] == "2024"
    assert layout["todayMarker"]["index"] == 2

    ident = {"taskName": "MiCA in force", "entity": "Regulatory Drivers", "sessionId": session_id}
    r = client.post("/get-task-analysis", json=ident)
    assert r.status_code == 200
    assert r.json()["status"] == "completed"
    assert r.json()["facts"][0]["url"] == "https://eur-lex.europa.eu"
    analysis_call = gemini.payloads[1]
    assert "13 November 2025" in analysis_call["systemInstruction"]["parts"][0]["text"]
    assert analysis_call["generationConfig"]["maxOutputTokens"] == 4096

    r = client.post("/ask-question", json={**ident, "question": "When does it apply?"})
    assert r.status_code == 200
    assert "2024" in r.json()["answer"]
    assert gemini.payloads[2]["generationConfig"]["maxOutputTokens"] == 2048


def test_empty_chart_is_reported_not_rendered(monkeypatch):
    class EmptySession(ScriptedGeminiSession):
        def post(self, url, **kwargs):
            return _Resp({"candidates": [{"content": {"parts": [{"text": '{"title": "t", "timeColumns": [], "data": []}'}]}}]})

    monkeypatch.setattr(llm_service, "get_client", lambda provider=None: llm_service.GeminiClient(api_key="k", session=EmptySession()))
    r = client.post("/generate-chart", data={"prompt": "p"}, files=[("researchFiles", ("a.txt", b"x", "text/plain"))])
    assert r.status_code == 422
    assert r.json()["error"].startswith("The AI was unable to find any tasks or time columns")


def test_infinite_bar_column_from_model_is_reported(monkeypatch):
    class InfinitySession(ScriptedGeminiSession):
        def post(self, url, **kwargs):
            text = '{"title": "t", "timeColumns": ["2025"], "data": [{"title": "x", "isSwimlane": false, "entity": "e", "bar": {"startCol": Infinity, "endCol": 2, "color": "blue"}}]}'
            return _Resp({"candidates": [{"content": {"parts": [{"text": text}]}}]})

    monkeypatch.setattr(llm_service, "get_client", lambda provider=None: llm_service.GeminiClient(api_key="k", session=InfinitySession()))
    r = client.post("/generate-chart", data={"prompt": "p"}, files=[("researchFiles", ("a.txt", b"x", "text/plain"))])
    assert r.status_code == 422
    assert r.json() == {"error": "Invalid chart data structure received from AI"}
