# backend/app/main.py
import logging
import os
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

# env must be loaded before the service modules read their configuration
load_dotenv()

from fastapi import Body, FastAPI, File, Form, Request, Response, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import ValidationError

from backend.app import ai_core, observability
from backend.app.doc_engine import UploadedDocument, extract_research_text
from backend.app.errors import GanttGeneratorError, UpstreamAPIError
from backend.app.models import TaskIdentifier, TaskQuestion
from backend.app.research_store import ResearchStore
from backend.app.routes.timeline import router as timeline_router
from backend.app.routes.visualization import router as visualization_router

logger = logging.getLogger("uvicorn.error")

SESSION_HEADER = "X-Research-Session"

# --- app init ---
app = FastAPI(title="Research Gantt Generator (Backend)")

observability.setup_logging()
app.add_middleware(observability.ObservabilityMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[SESSION_HEADER],
)

app.include_router(visualization_router)
app.include_router(timeline_router)

research_store = ResearchStore()


@app.on_event("startup")
def _on_startup():
    sentry = os.environ.get("SENTRY_DSN")
    if sentry:
        try:
            import sentry_sdk

            sentry_sdk.init(dsn=sentry)
            logger.info("SENTRY_DSN configured (not printed).")
        except Exception as exc:
            logger.warning("Failed to initialize Sentry SDK: %s", exc)


@app.exception_handler(GanttGeneratorError)
async def _gantt_error_handler(request: Request, exc: GanttGeneratorError):
    logger.warning("%s on %s: %s", type(exc).__name__, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@app.get("/metrics")
def _metrics():
    data = generate_latest()
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)


@app.post("/generate-chart", tags=["Gantt Generation"])
async def generate_chart(
    prompt: str = Form(""),
    researchFiles: Optional[List[UploadFile]] = File(None),
):
    """
    Extract the uploaded research, ask the model for chart data and return it.
    The research is kept for follow-up analysis under the session id returned
    in the X-Research-Session header.
    """
    documents = []
    for upload in researchFiles or []:
        documents.append(UploadedDocument(
            name=upload.filename or "untitled",
            content=await upload.read(),
            mime_type=upload.content_type or "text/plain",
        ))

    # UploadProcessingError propagates to the handler as a 500 envelope
    corpus = extract_research_text(documents)
    context = research_store.create(corpus.text, corpus.file_names)

    try:
        chart = await ai_core.generate_chart(prompt, corpus.text)
    except UpstreamAPIError as e:
        logger.error("Chart generation failed: %s", e.message)
        return _error(500, f"Error generating chart data: {e.message}")

    return JSONResponse(
        status_code=200,
        content=ai_core.chart_to_dict(chart),
        headers={SESSION_HEADER: context.session_id},
    )


@app.post("/get-task-analysis", tags=["Task Analysis"])
async def get_task_analysis(request: Request, payload: Dict[str, Any] = Body(...)):
    if not payload.get("taskName") or not payload.get("entity"):
        return _error(400, "Missing taskName or entity")
    try:
        ident = TaskIdentifier.model_validate(payload)
    except ValidationError as ve:
        logger.warning("Invalid analysis request: %s", ve.errors())
        return _error(400, "Missing taskName or entity")

    context = research_store.get(ident.session_id or request.headers.get(SESSION_HEADER))
    logger.info("Analyzing task %r for session %s (files: %s)", ident.task_name, context.session_id, ", ".join(context.file_names) or "none")
    try:
        analysis = await ai_core.analyze_task(context.text, ident.task_name, ident.entity)
    except UpstreamAPIError as e:
        logger.error("Task analysis failed: %s", e.message)
        return _error(500, f"Error generating task analysis: {e.message}")
    return JSONResponse(status_code=200, content=analysis.model_dump(by_alias=True, mode="json"))


@app.post("/ask-question", tags=["Task Analysis"])
async def ask_question(request: Request, payload: Dict[str, Any] = Body(...)):
    if not payload.get("taskName") or not payload.get("entity") or not payload.get("question"):
        return _error(400, "Missing taskName, entity or question")
    try:
        q = TaskQuestion.model_validate(payload)
    except ValidationError as ve:
        logger.warning("Invalid question request: %s", ve.errors())
        return _error(400, "Missing taskName, entity or question")

    context = research_store.get(q.session_id or request.headers.get(SESSION_HEADER))
    logger.info("Answering question on %r for session %s (files: %s)", q.task_name, context.session_id, ", ".join(context.file_names) or "none")
    try:
        answer = await ai_core.answer_question(context.text, q.task_name, q.entity, q.question)
    except UpstreamAPIError as e:
        logger.error("Question answering failed: %s", e.message)
        return _error(500, f"Error answering question: {e.message}")
    return JSONResponse(status_code=200, content=answer.model_dump(by_alias=True))


@app.get("/health")
def health():
    return {"status": "ok"}
