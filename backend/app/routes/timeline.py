from fastapi import APIRouter, Body
from fastapi.responses import JSONResponse
from typing import Dict, Any
import logging

from pydantic import ValidationError

from backend.app.ai_core import reference_date
from backend.app.models import TodayPositionRequest
from backend.app.timeline import detect_granularity, resolve_today_position

logger = logging.getLogger("uvicorn.error")
router = APIRouter(prefix="/api/v1/timeline", tags=["Timeline"])


@router.post("/today")
async def today_position(payload: Dict[str, Any] = Body(...)):
    """
    Resolve where the reference date (default: today) falls in the given time
    columns. ``position`` is null when the date is outside the chart.
    """
    try:
        req = TodayPositionRequest.model_validate(payload)
    except ValidationError as ve:
        logger.warning("Invalid timeline request: %s", ve.errors())
        return JSONResponse(status_code=400, content={"error": "timeColumns must be a list of strings and referenceDate an ISO date"})

    ref = req.reference_date or reference_date()
    position = resolve_today_position(ref, req.time_columns)
    granularity = detect_granularity(req.time_columns[0]) if req.time_columns else None
    return {
        "referenceDate": ref.isoformat(),
        "granularity": granularity.value if granularity else None,
        "position": position.to_dict() if position else None,
    }
