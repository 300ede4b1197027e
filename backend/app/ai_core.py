# backend/app/ai_core.py
import asyncio
import logging
import os
from datetime import date
from typing import Any, Dict, Optional

from pydantic import ValidationError

from backend.app.errors import SchemaMismatchError
from backend.app.models import ChatAnswer, GanttChart, TaskAnalysis
from backend.app.services import llm_service, prompt_builder

logger = logging.getLogger("uvicorn.error")

EMPTY_CHART_MESSAGE = (
    "The AI was unable to find any tasks or time columns in the provided documents. "
    "Please check your files or try a different prompt."
)


def reference_date() -> date:
    """GANTT_REFERENCE_DATE (ISO) when set, otherwise today."""
    raw = (os.getenv("GANTT_REFERENCE_DATE") or "").strip()
    if raw:
        try:
            return date.fromisoformat(raw)
        except ValueError:
            logger.warning("Ignoring invalid GANTT_REFERENCE_DATE=%r", raw)
    return date.today()


async def _call_model_async(request: llm_service.CompletionRequest, client: Any = None) -> Any:
    """Run the blocking completion call (with its retries) in a worker thread."""
    return await asyncio.to_thread(llm_service.generate_json, request, client)


def validate_chart(payload: Any) -> GanttChart:
    if not isinstance(payload, dict):
        raise SchemaMismatchError("Invalid chart data structure received from AI")
    try:
        chart = GanttChart.model_validate(payload)
    except ValidationError as ve:
        logger.warning("Chart payload failed validation: %s", ve.errors())
        raise SchemaMismatchError("Invalid chart data structure received from AI") from ve
    if not chart.time_columns or not chart.data:
        raise SchemaMismatchError(EMPTY_CHART_MESSAGE)
    return chart


def validate_analysis(payload: Any) -> TaskAnalysis:
    if not isinstance(payload, dict):
        raise SchemaMismatchError("Invalid analysis data structure received from AI")
    try:
        return TaskAnalysis.model_validate(payload)
    except ValidationError as ve:
        logger.warning("Analysis payload failed validation: %s", ve.errors())
        raise SchemaMismatchError("Invalid analysis data structure received from AI") from ve


def validate_answer(payload: Any) -> ChatAnswer:
    if not isinstance(payload, dict):
        raise SchemaMismatchError("Invalid answer received from AI")
    try:
        return ChatAnswer.model_validate(payload)
    except ValidationError as ve:
        raise SchemaMismatchError("Invalid answer received from AI") from ve


async def generate_chart(user_prompt: str, research_text: str, client: Any = None) -> GanttChart:
    request = prompt_builder.build_chart_request(user_prompt, research_text)
    payload = await _call_model_async(request, client)
    chart = validate_chart(payload)
    logger.info(
        "Chart %r: %d column(s), %d row(s), %d task(s)",
        chart.title, len(chart.time_columns), len(chart.data), len(chart.tasks()),
    )
    return chart


async def analyze_task(
    research_text: str,
    task_name: str,
    entity: str,
    today: Optional[date] = None,
    client: Any = None,
) -> TaskAnalysis:
    request = prompt_builder.build_analysis_request(research_text, task_name, entity, today or reference_date())
    payload = await _call_model_async(request, client)
    return validate_analysis(payload)


async def answer_question(
    research_text: str,
    task_name: str,
    entity: str,
    question: str,
    today: Optional[date] = None,
    client: Any = None,
) -> ChatAnswer:
    request = prompt_builder.build_chat_request(research_text, task_name, entity, question, today or reference_date())
    payload = await _call_model_async(request, client)
    return validate_answer(payload)


def chart_to_dict(chart: GanttChart) -> Dict[str, Any]:
    """Wire shape (camelCase) returned to the front end."""
    return chart.model_dump(by_alias=True, mode="json")
