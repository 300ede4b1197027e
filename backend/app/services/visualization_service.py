# backend/app/services/visualization_service.py
"""
Visualization service: Gantt layout math and the plotly renderer.

- bar_span(...)            -> 1-based, end-exclusive column span -> 0-based [start, end)
- today_marker(...)        -> resolver output -> proportional offset across the columns
- chart_layout(...)        -> JSON summary of bars and marker (no rendering)
- build_gantt_figure(...)  -> plotly figure, one x unit per time column
- generate_gantt_image(...) -> PNG bytes (placeholder image if export fails)
"""
import logging
from dataclasses import asdict, dataclass
from datetime import date
from io import BytesIO
from typing import Any, Dict, List, Optional, Tuple, Union

import plotly.graph_objects as go
import plotly.io as pio
from PIL import Image, ImageDraw, ImageFont

from backend.app.models import ChartBar, GanttChart
from backend.app.timeline import ColumnPosition, resolve_today_position

logger = logging.getLogger("uvicorn.error")

BAR_COLORS: Dict[str, str] = {
    "blue": "#3b82f6",
    "ochre": "#c99a2e",
    "orange": "#f97316",
    "green": "#22a06b",
    "default": "#94a3b8",
}
TODAY_COLOR = "red"
ROW_HEIGHT = 34
MIN_PNG_BYTES = 200


@dataclass(frozen=True)
class BarLayout:
    row: int
    title: str
    entity: str
    x0: int
    x1: int
    color: str


@dataclass(frozen=True)
class TodayMarker:
    index: int
    fraction: float
    offset: float  # 0..1 across the time-column area
    x: float  # in column units


# ------------------ Layout math ------------------

def bar_span(bar: Optional[ChartBar], n_cols: int) -> Optional[Tuple[int, int]]:
    """
    0-based, end-exclusive column span for a bar, clipped to the chart.
    A missing endCol (or one not after startCol) covers a single column.
    Returns None when the bar has no start or starts outside the chart.
    """
    if bar is None or bar.start_col is None or n_cols <= 0:
        return None
    start = bar.start_col - 1
    if start < 0 or start >= n_cols:
        return None
    end = start + 1 if bar.end_col is None or bar.end_col <= bar.start_col else bar.end_col - 1
    return start, min(end, n_cols)


def today_marker(time_columns: List[str], today: Union[date, ColumnPosition, None]) -> Optional[TodayMarker]:
    if not time_columns or today is None:
        return None
    position = today if isinstance(today, ColumnPosition) else resolve_today_position(today, time_columns)
    if position is None:
        return None
    x = position.index + position.fraction
    return TodayMarker(index=position.index, fraction=position.fraction, offset=x / len(time_columns), x=x)


def layout_bars(chart: GanttChart) -> List[BarLayout]:
    n_cols = len(chart.time_columns)
    bars: List[BarLayout] = []
    for row_index, row in enumerate(chart.data):
        if not row.has_bar:
            continue
        span = bar_span(row.bar, n_cols)
        if span is None:
            logger.debug("Skipping bar outside the chart: %s", row.title)
            continue
        bars.append(BarLayout(row_index, row.title, row.entity, span[0], span[1], row.bar.color))
    return bars


def chart_layout(chart: GanttChart, today: Optional[date] = None) -> Dict[str, Any]:
    marker = today_marker(chart.time_columns, today)
    return {
        "status": "ok",
        "title": chart.title,
        "columns": list(chart.time_columns),
        "rows": len(chart.data),
        "bars": [asdict(b) for b in layout_bars(chart)],
        "todayMarker": asdict(marker) if marker else None,
    }


# ------------------ Rendering ------------------

def _placeholder_png_bytes(text: str = "Chart unavailable", width: int = 1000, height: int = 400) -> bytes:
    """Plain PNG with ``text`` centered, used when plotly export is unavailable."""
    img = Image.new("RGB", (width, height), color=(255, 255, 255))
    draw = ImageDraw.Draw(img)
    try:
        font = ImageFont.truetype("arial.ttf", 20)
    except IOError:
        font = ImageFont.load_default()

    try:
        bbox = draw.textbbox((0, 0), text, font=font)
        w, h = bbox[2] - bbox[0], bbox[3] - bbox[1]
    except Exception as e:
        logger.error("Error calculating placeholder text size: %s", str(e))
        w, h = 300, 25

    draw.text(((width - w) / 2, (height - h) / 2), text, fill=(50, 50, 50), font=font)
    buf = BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def build_gantt_figure(chart: GanttChart, today: Optional[date] = None, width: int = 1400) -> go.Figure:
    """
    Column i of ``time_columns`` spans x in [i, i+1]; row r sits at y = r
    (swimlanes are label-only rows). The y axis is reversed so row 0 is on top.
    """
    n_cols = len(chart.time_columns)
    n_rows = len(chart.data)
    fig = go.Figure()

    # invisible trace so both axes exist even for a chart with no bars
    fig.add_trace(go.Scatter(x=[0, n_cols], y=[0, max(n_rows - 1, 0)], mode="markers",
                             marker=dict(opacity=0), hoverinfo="skip", showlegend=False))

    # swimlane bands
    for row_index, row in enumerate(chart.data):
        if row.is_swimlane:
            fig.add_shape(type="rect", x0=0, x1=n_cols, y0=row_index - 0.5, y1=row_index + 0.5,
                          xref="x", yref="y", fillcolor="rgba(226,232,240,0.8)", line=dict(width=0), layer="below")

    # column grid lines
    for i in range(n_cols + 1):
        fig.add_shape(type="line", x0=i, x1=i, y0=-0.5, y1=n_rows - 0.5,
                      xref="x", yref="y", line=dict(color="rgba(148,163,184,0.5)", width=1), layer="below")

    for bar in layout_bars(chart):
        color = BAR_COLORS.get(bar.color, BAR_COLORS["default"])
        fig.add_shape(type="rect", x0=bar.x0, x1=bar.x1, y0=bar.row - 0.32, y1=bar.row + 0.32,
                      xref="x", yref="y", fillcolor=color, line=dict(width=0), opacity=0.95,
                      name=bar.title)

    marker = today_marker(chart.time_columns, today)
    if marker is not None:
        fig.add_shape(type="line", x0=marker.x, x1=marker.x, y0=-0.5, y1=n_rows - 0.5,
                      xref="x", yref="y", line=dict(color=TODAY_COLOR, dash="dash", width=1.5),
                      opacity=0.9, name="today")
        fig.add_annotation(x=marker.x, y=-0.5, xref="x", yref="y", yshift=12,
                           text="Today", showarrow=False, font=dict(color=TODAY_COLOR, size=11))

    ticktext = [f"<b>{row.title}</b>" if row.is_swimlane else row.title for row in chart.data]
    fig.update_yaxes(tickmode="array", tickvals=list(range(n_rows)), ticktext=ticktext,
                     range=[n_rows - 0.5, -0.5], showgrid=False, zeroline=False)
    fig.update_xaxes(tickmode="array", tickvals=[i + 0.5 for i in range(n_cols)],
                     ticktext=list(chart.time_columns), range=[0, n_cols], side="top",
                     showgrid=False, zeroline=False)
    fig.update_layout(
        title=dict(text=chart.title, x=0.01),
        width=width,
        height=max(320, ROW_HEIGHT * n_rows + 160),
        margin=dict(l=330, r=30, t=110, b=30),
        showlegend=False,
        plot_bgcolor="white",
        font=dict(family="Roboto", size=12),
    )
    return fig


def generate_gantt_image(chart: GanttChart, today: Optional[date] = None, width: int = 1400) -> bytes:
    try:
        fig = build_gantt_figure(chart, today=today, width=width)
        png = pio.to_image(fig, format="png", width=width, height=fig.layout.height, scale=2)
        if png and len(png) > MIN_PNG_BYTES:
            return png
        logger.warning("Gantt export produced tiny image (len=%d).", len(png) if png else 0)
        return _placeholder_png_bytes("Empty chart")
    except Exception as e:
        logger.exception("generate_gantt_image failed: %s", e)
        return _placeholder_png_bytes("Gantt chart failed")
