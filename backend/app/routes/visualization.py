from fastapi import APIRouter, Query
from fastapi.responses import Response, JSONResponse
from typing import Dict, Any, Optional
from datetime import date
import logging

from pydantic import ValidationError

from backend.app.ai_core import reference_date
from backend.app.errors import ChartRenderError, SchemaMismatchError
from backend.app.models import GanttChart
from backend.app.services.visualization_service import chart_layout, generate_gantt_image

logger = logging.getLogger("uvicorn.error")
router = APIRouter(prefix="/api/v1/visualization", tags=["Visualization"])


def _parse_chart(data: Dict[str, Any]) -> GanttChart:
    try:
        return GanttChart.model_validate(data)
    except ValidationError as ve:
        logger.warning("Invalid chart payload: %s", ve.errors())
        raise SchemaMismatchError("Invalid chart data structure") from ve


@router.post("/gantt")
async def gantt(data: Dict[str, Any], reference: Optional[date] = Query(None, alias="referenceDate", description="Date for the Today marker (defaults to today)")):
    """
    Lay out a chart and return a JSON summary: 0-based bar spans per row and
    the Today marker position (null when the date is outside the columns).
    """
    chart = _parse_chart(data)
    try:
        return chart_layout(chart, today=reference or reference_date())
    except Exception as e:
        logger.exception("Gantt layout failed")
        raise ChartRenderError(f"Error rendering chart: {e}") from e


@router.post("/gantt/png")
async def gantt_png(data: Dict[str, Any], reference: Optional[date] = Query(None, alias="referenceDate"), width: Optional[int] = Query(1400, description="Image width in px")):
    """
    Render the chart and return raw PNG image (Content-Type: image/png).
    Used by the front end for display and for "Export as PNG".
    """
    chart = _parse_chart(data)
    try:
        image_bytes = generate_gantt_image(chart, today=reference or reference_date(), width=width or 1400)
        return Response(
            content=image_bytes,
            media_type="image/png",
            headers={"Content-Disposition": 'inline; filename="gantt-chart.png"'},
        )
    except Exception as e:
        logger.exception("Gantt PNG generation failed")
        raise ChartRenderError(f"Error rendering chart: {e}") from e


# simple health/check endpoint for visualization router
@router.get("/health")
async def health():
    return JSONResponse({"status": "ok", "service": "visualization"})
