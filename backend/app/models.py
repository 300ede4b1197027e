# backend/app/models.py
from __future__ import annotations

import math

from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import date
from typing import List, Literal, Optional

ANALYSIS_STATUSES = ("completed", "in-progress", "not-started", "n/a")


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ------------- Chart contract -------------

class ChartBar(_CamelModel):
    """1-based column span; end_col is exclusive (end_col = start_col + span)."""
    start_col: Optional[int] = Field(None, alias="startCol")
    end_col: Optional[int] = Field(None, alias="endCol")
    color: str = "default"

    @field_validator("start_col", "end_col", mode="before")
    @classmethod
    def _coerce_column(cls, v):
        """The schema types columns as NUMBER, so the model may send 3.0 or "3"."""
        if v is None or v == "":
            return None
        if isinstance(v, bool):
            return None
        if isinstance(v, str):
            try:
                v = float(v.strip())
            except ValueError:
                return None
        if isinstance(v, float):
            if not math.isfinite(v):
                raise ValueError("column must be a finite number")
            return int(round(v))
        return v

    @field_validator("color", mode="before")
    @classmethod
    def _default_color(cls, v):
        s = str(v).strip() if v is not None else ""
        return s or "default"


class ChartRow(_CamelModel):
    title: str
    is_swimlane: bool = Field(..., alias="isSwimlane")
    entity: str
    bar: Optional[ChartBar] = None

    @property
    def has_bar(self) -> bool:
        return (not self.is_swimlane) and self.bar is not None and self.bar.start_col is not None


class GanttChart(_CamelModel):
    title: str
    time_columns: List[str] = Field(..., alias="timeColumns")
    data: List[ChartRow]

    @field_validator("time_columns", mode="before")
    @classmethod
    def _strip_columns(cls, v):
        if isinstance(v, list):
            return [str(c).strip() for c in v if c is not None]
        return v

    def tasks(self) -> List[ChartRow]:
        return [row for row in self.data if not row.is_swimlane]


# ------------- Task analysis contract -------------

class FactItem(_CamelModel):
    fact: str
    source: str = ""
    url: Optional[str] = None


class AssumptionItem(_CamelModel):
    assumption: str
    source: str = ""
    url: Optional[str] = None


class TaskAnalysis(_CamelModel):
    task_name: str = Field(..., alias="taskName")
    start_date: Optional[str] = Field(None, alias="startDate")
    end_date: Optional[str] = Field(None, alias="endDate")
    status: Literal["completed", "in-progress", "not-started", "n/a"]
    facts: List[FactItem] = Field(default_factory=list)
    assumptions: List[AssumptionItem] = Field(default_factory=list)
    rationale: Optional[str] = None
    summary: Optional[str] = None

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, v):
        """
        Normalize "In Progress", "not_started", "N/A" etc. to the canonical tokens.
        Anything unrecognized becomes "n/a".
        """
        if v is None:
            return "n/a"
        s = "-".join(str(v).strip().lower().replace("_", " ").split())
        return s if s in ANALYSIS_STATUSES else "n/a"

    @field_validator("facts", "assumptions", mode="before")
    @classmethod
    def _none_to_list(cls, v):
        return [] if v is None else v


# ------------- Requests from the front end -------------

class TaskIdentifier(_CamelModel):
    task_name: str = Field(..., alias="taskName", min_length=1)
    entity: str = Field(..., min_length=1)
    session_id: Optional[str] = Field(None, alias="sessionId")

    @field_validator("task_name", "entity", mode="before")
    @classmethod
    def _strip(cls, v):
        return v.strip() if isinstance(v, str) else v


class TaskQuestion(TaskIdentifier):
    question: str = Field(..., min_length=1)

    @field_validator("question", mode="before")
    @classmethod
    def _strip_question(cls, v):
        return v.strip() if isinstance(v, str) else v


class ChatAnswer(_CamelModel):
    answer: str


class TodayPositionRequest(_CamelModel):
    time_columns: List[str] = Field(default_factory=list, alias="timeColumns")
    reference_date: Optional[date] = Field(None, alias="referenceDate")
