# backend/app/services/prompt_builder.py
"""System prompts and response schemas for the chart, task-analysis and chat requests."""
from datetime import date
from typing import Any, Dict

from backend.app.services.llm_service import CompletionRequest

CHART_MAX_OUTPUT_TOKENS = 8192
ANALYSIS_MAX_OUTPUT_TOKENS = 4096
CHAT_MAX_OUTPUT_TOKENS = 2048

GANTT_SCHEMA: Dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "title": {"type": "STRING"},
        "timeColumns": {"type": "ARRAY", "items": {"type": "STRING"}},
        "data": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "title": {"type": "STRING"},
                    "isSwimlane": {"type": "BOOLEAN"},
                    "entity": {"type": "STRING"},
                    "bar": {
                        "type": "OBJECT",
                        "properties": {
                            "startCol": {"type": "NUMBER"},
                            "endCol": {"type": "NUMBER"},
                            "color": {"type": "STRING"},
                        },
                    },
                },
                "required": ["title", "isSwimlane", "entity"],
            },
        },
    },
    "required": ["title", "timeColumns", "data"],
}

_SOURCED_ITEM = lambda key: {  # noqa: E731
    "type": "OBJECT",
    "properties": {
        key: {"type": "STRING"},
        "source": {"type": "STRING"},
        "url": {"type": "STRING"},
    },
}

ANALYSIS_SCHEMA: Dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "taskName": {"type": "STRING"},
        "startDate": {"type": "STRING"},
        "endDate": {"type": "STRING"},
        "status": {"type": "STRING", "enum": ["completed", "in-progress", "not-started", "n/a"]},
        "facts": {"type": "ARRAY", "items": _SOURCED_ITEM("fact")},
        "assumptions": {"type": "ARRAY", "items": _SOURCED_ITEM("assumption")},
        "rationale": {"type": "STRING"},  # for in-progress / not-started
        "summary": {"type": "STRING"},  # for completed
    },
    "required": ["taskName", "status"],
}

CHAT_SCHEMA: Dict[str, Any] = {
    "type": "OBJECT",
    "properties": {"answer": {"type": "STRING"}},
    "required": ["answer"],
}

CHART_SYSTEM_PROMPT = """You are an expert project management analyst. Your job is to analyze a user's prompt and research files to build a complete Gantt chart data object.

You MUST respond with *only* a valid JSON object matching the schema.

**CRITICAL LOGIC:**
1.  **TIME HORIZON:** First, check the user's prompt for an *explicitly requested* time range (e.g., "2020-2030").
    - If found, use that range.
    - If NOT found, find the *earliest* and *latest* date in all the research to create the range.
2.  **TIME INTERVAL:** Based on the *total duration* of that range, you MUST choose an interval:
    - 0-3 months total: Use "Weeks" (e.g., ["W1 2026", "W2 2026"])
    - 4-12 months total: Use "Months" (e.g., ["Jan 2026", "Feb 2026"])
    - 1-3 years total: Use "Quarters" (e.g., ["Q1 2026", "Q2 2026"])
    - 3+ years total: You MUST use "Years" (e.g., ["2020", "2021", "2022"])
3.  **CHART DATA:** Create the 'data' array.
    - First, identify all logical swimlanes (e.g., "Regulatory Drivers", "JPMorgan Chase"). Add an object for each: `{ "title": "Swimlane Name", "isSwimlane": true, "entity": "Swimlane Name" }`
    - Immediately after each swimlane, add all tasks that belong to it: `{ "title": "Task Name", "isSwimlane": false, "entity": "Swimlane Name", "bar": { ... } }`
    - **DO NOT** create empty swimlanes. If you find no tasks for an entity, do not include it.
4.  **BAR LOGIC:**
    - 'startCol' is the 1-based index of the 'timeColumns' array where the task begins.
    - 'endCol' is the 1-based index of the 'timeColumns' array where the task ends, **PLUS ONE**.
    - A task in "2022" has `startCol: 3, endCol: 4` (if 2020 is col 1).
    - If a date is "Q1 2024" and the interval is "Years", "2024" is the column. Map it to the "2024" column index.
    - If a date is unknown ("null"), the 'bar' object must be `{ "startCol": null, "endCol": null, "color": "..." }`.
5.  **COLORS:** Assign colors logically ("blue", "ochre", "orange", "green", "default").
6.  **SANITIZATION:** All string values MUST be valid JSON strings. You MUST properly escape any characters that would break JSON, such as double quotes (\\") and newlines (\\n), within the string value itself."""

ANALYSIS_SYSTEM_PROMPT = """You are a senior project management analyst. Your job is to analyze the provided research and a user prompt to build a detailed analysis for *one single task*.

You MUST respond with *only* a valid JSON object matching the 'analysisSchema'.

**CRITICAL RULES FOR ANALYSIS:**
1.  **NO INFERENCE:** For 'taskName', 'facts', and 'assumptions', you MUST use key phrases and data extracted *directly* from the provided text.
2.  **CITE SOURCES (HIERARCHY):** You MUST find a source for every 'fact' and 'assumption'. Follow this logic:
    a.  **PRIORITY 1 (Inline Citation):** First, search the research text *immediately near* the fact/assumption for a specific inline citation (e.g., text inside brackets `[example.com]`, `[Source: Report X]`, or parentheses `(example.com)`). If found, you MUST use this inline text as the 'source' value. If the citation is a web address, also put the full address in 'url'.
    b.  **PRIORITY 2 (Filename Fallback):** If and *only if* no specific inline citation is found for that fact/assumption, you MUST default to using the filename (e.g., "FileA.docx") as the 'source', which you can find in the `--- Start of file: ... ---` wrapper.
3.  **DETERMINE STATUS:** Determine the task's 'status' ("completed", "in-progress", or "not-started") based on the current date ({today}) and the task's dates.
4.  **PROVIDE RATIONALE:** You MUST provide a 'rationale' for 'in-progress' and 'not-started' tasks, analyzing the likelihood of on-time completion based on the 'facts' and 'assumptions'. Provide a 'summary' for 'completed' tasks.
5.  **CLEAN STRINGS:** All string values MUST be valid JSON strings. You MUST properly escape any characters that would break JSON, such as double quotes (\\") and newlines (\\n)."""

CHAT_SYSTEM_PROMPT = """You are a project management analyst answering follow-up questions about *one single task* on a Gantt chart.

You MUST respond with *only* a valid JSON object of the form {{"answer": "..."}}.

**RULES:**
1.  Answer ONLY from the provided research content. If the research does not contain the answer, say so plainly.
2.  Keep the answer short (at most a few sentences) and cite the source file or inline citation in brackets where possible.
3.  Treat the current date as {today}.
4.  The answer MUST be a valid JSON string; escape double quotes (\\") and newlines (\\n)."""


def _format_today(today: date) -> str:
    return today.strftime("%d %B %Y")


def build_chart_request(user_prompt: str, research_text: str) -> CompletionRequest:
    user_query = f'User Prompt: "{user_prompt or ""}"\n\nResearch Content:\n{research_text or ""}'
    return CompletionRequest(
        system_instruction=CHART_SYSTEM_PROMPT,
        user_query=user_query,
        response_schema=GANTT_SCHEMA,
        max_output_tokens=CHART_MAX_OUTPUT_TOKENS,
        name="gantt_chart",
    )


def build_analysis_request(research_text: str, task_name: str, entity: str, today: date) -> CompletionRequest:
    user_query = (
        f"Research Content:\n{research_text or ''}\n\n"
        "**YOUR TASK:** Provide a full, detailed analysis for this specific task:\n"
        f'  - Entity: "{entity}"\n'
        f'  - Task Name: "{task_name}"'
    )
    return CompletionRequest(
        system_instruction=ANALYSIS_SYSTEM_PROMPT.format(today=_format_today(today)),
        user_query=user_query,
        response_schema=ANALYSIS_SCHEMA,
        max_output_tokens=ANALYSIS_MAX_OUTPUT_TOKENS,
        name="task_analysis",
    )


def build_chat_request(research_text: str, task_name: str, entity: str, question: str, today: date) -> CompletionRequest:
    user_query = (
        f"Research Content:\n{research_text or ''}\n\n"
        "**TASK CONTEXT:**\n"
        f'  - Entity: "{entity}"\n'
        f'  - Task Name: "{task_name}"\n\n'
        f'**QUESTION:** "{question}"'
    )
    return CompletionRequest(
        system_instruction=CHAT_SYSTEM_PROMPT.format(today=_format_today(today)),
        user_query=user_query,
        response_schema=CHAT_SCHEMA,
        max_output_tokens=CHAT_MAX_OUTPUT_TOKENS,
        name="task_chat",
    )
