# streamlit_app.py
"""
Streamlit UI for the Research Gantt Generator
- Run: streamlit run frontend/streamlit_app.py
- Requires: streamlit, requests
"""
import os
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

import requests
import streamlit as st

# ---------------- Configuration ----------------
API_BASE_DEFAULT = os.getenv("GANTT_API_BASE", "http://localhost:8000")
GENERATE_SUFFIX = "/generate-chart"
ANALYSIS_SUFFIX = "/get-task-analysis"
QUESTION_SUFFIX = "/ask-question"
PNG_SUFFIX = "/api/v1/visualization/gantt/png"
SESSION_HEADER = "X-Research-Session"
ACCEPTED_TYPES = ["md", "txt", "docx"]

STATUS_BADGES = {
    "completed": "✅ Completed",
    "in-progress": "🟡 In progress",
    "not-started": "⚪ Not started",
    "n/a": "N/A",
}


# ---------------- Helpers ----------------
def build_api_urls(base: str) -> Dict[str, str]:
    base = base.rstrip("/")
    return {
        "generate": f"{base}{GENERATE_SUFFIX}",
        "analysis": f"{base}{ANALYSIS_SUFFIX}",
        "question": f"{base}{QUESTION_SUFFIX}",
        "png": f"{base}{PNG_SUFFIX}",
    }


def error_text(r: requests.Response) -> str:
    """The backend's {"error": ...} message, verbatim when present."""
    try:
        body = r.json()
    except ValueError:
        return f"Server error {r.status_code}: {r.text}"
    if isinstance(body, dict):
        return str(body.get("error") or body.get("detail") or body)
    return str(body)


def task_options(chart: Dict[str, Any]) -> List[Tuple[str, str]]:
    """(taskName, entity) for every task row that has a bar, in chart order."""
    out = []
    for row in chart.get("data") or []:
        bar = row.get("bar") or {}
        if not row.get("isSwimlane") and bar.get("startCol") is not None:
            out.append((row.get("title", ""), row.get("entity", "")))
    return out


def clear_chart_state():
    for key in ("chart", "chart_png", "chart_png_for", "session_id", "analysis", "analysis_for"):
        st.session_state.pop(key, None)


def _source_line(item: Dict[str, Any], text_key: str) -> str:
    text = item.get(text_key, "")
    source = item.get("source") or ""
    url = item.get("url")
    if url:
        return f"- {text} *([{source or url}]({url}))*"
    return f"- {text} *({source})*" if source else f"- {text}"


# ---------------- UI ----------------
st.set_page_config(page_title="Research Gantt Generator", layout="wide")
st.title("Research Gantt Generator")

with st.sidebar:
    st.header("Backend / Settings")
    api_base = st.text_input("API base URL", API_BASE_DEFAULT)
    timeout_sec = st.number_input("Request timeout (s)", min_value=5, max_value=1300, value=300, step=5)
    reference_day = st.date_input("Today marker date", value=date.today())
    st.markdown("**Tips:** Set API base to your FastAPI host, e.g. http://localhost:8000")

urls = build_api_urls(api_base)

# --- Inputs ---
st.header("1. Research & Prompt")
prompt = st.text_area(
    "What should the chart show?",
    height=120,
    value="Create a Gantt chart of the key regulatory milestones and bank implementation timelines.",
    key="prompt",
)
uploads = st.file_uploader("Research files", type=ACCEPTED_TYPES, accept_multiple_files=True, key="uploads")
btn_generate = st.button("Generate Chart", type="primary", use_container_width=True)
generation_status = st.empty()

if btn_generate:
    if not uploads:
        generation_status.error("Please upload at least one research file.")
    else:
        clear_chart_state()
        files = [("researchFiles", (f.name, f.getvalue(), f.type or "text/plain")) for f in uploads]
        try:
            with st.spinner("Analyzing research and building the chart..."):
                r = requests.post(urls["generate"], data={"prompt": prompt}, files=files, timeout=timeout_sec)
            if r.status_code == 200:
                st.session_state["chart"] = r.json()
                st.session_state["session_id"] = r.headers.get(SESSION_HEADER)
                generation_status.success("Chart generated.")
            else:
                generation_status.error(error_text(r))
        except requests.RequestException as re:
            generation_status.error(f"Request failed: {re}. Check backend at {urls['generate']}")

chart: Optional[Dict[str, Any]] = st.session_state.get("chart")

# --- Chart ---
if chart:
    st.markdown("---")
    st.header(f"2. {chart.get('title') or 'Gantt Chart'}")
    png_key = ("chart_png", reference_day.isoformat())
    if st.session_state.get("chart_png_for") != png_key:
        try:
            r = requests.post(urls["png"], json=chart, params={"referenceDate": reference_day.isoformat()}, timeout=timeout_sec)
            if r.status_code == 200:
                st.session_state["chart_png"] = r.content
                st.session_state["chart_png_for"] = png_key
            else:
                st.error(error_text(r))
        except requests.RequestException as re:
            st.error(f"Chart rendering failed: {re}")

    png = st.session_state.get("chart_png")
    if png:
        st.image(png, use_container_width=True)
        st.download_button("Export as PNG", data=png, file_name="gantt-chart.png", mime="image/png")

    # --- Task analysis ---
    st.markdown("---")
    st.header("3. Task Analysis")
    tasks = task_options(chart)
    if not tasks:
        st.info("No tasks with known dates to analyze.")
    else:
        choice = st.selectbox("Task", options=tasks, format_func=lambda t: f"{t[0]} ({t[1]})", key="task_choice")
        task_name, entity = choice
        identity = {"taskName": task_name, "entity": entity, "sessionId": st.session_state.get("session_id")}

        if st.button("Analyze task", key="btn_analyze"):
            st.session_state.pop("analysis", None)
            try:
                with st.spinner("Analyzing..."):
                    r = requests.post(urls["analysis"], json=identity, timeout=timeout_sec)
                if r.status_code == 200:
                    st.session_state["analysis"] = r.json()
                    st.session_state["analysis_for"] = choice
                else:
                    st.error(error_text(r))
            except requests.RequestException as re:
                st.error(f"Request failed: {re}")

        analysis = st.session_state.get("analysis")
        if analysis and st.session_state.get("analysis_for") == choice:
            st.subheader(analysis.get("taskName") or task_name)
            c1, c2, c3 = st.columns(3)
            c1.metric("Status", STATUS_BADGES.get(analysis.get("status"), analysis.get("status", "")))
            c2.metric("Start", analysis.get("startDate") or "N/A")
            c3.metric("End", analysis.get("endDate") or "N/A")
            if analysis.get("summary"):
                st.markdown(f"**Summary:** {analysis['summary']}")
            if analysis.get("rationale"):
                st.markdown(f"**Rationale:** {analysis['rationale']}")
            fa, aa = st.columns(2)
            with fa:
                st.markdown("**Facts**")
                st.markdown("\n".join(_source_line(f, "fact") for f in analysis.get("facts") or []) or "_None found_")
            with aa:
                st.markdown("**Assumptions**")
                st.markdown("\n".join(_source_line(a, "assumption") for a in analysis.get("assumptions") or []) or "_None found_")

        # --- Follow-up chat, one history per task ---
        st.subheader("Ask about this task")
        histories = st.session_state.setdefault("chat_history", {})
        history = histories.setdefault(f"{entity}::{task_name}", [])
        for role, text in history:
            with st.chat_message(role):
                st.markdown(text)
        question = st.chat_input("Ask a follow-up question")
        if question:
            history.append(("user", question))
            try:
                r = requests.post(urls["question"], json={**identity, "question": question}, timeout=timeout_sec)
                if r.status_code == 200:
                    history.append(("assistant", r.json().get("answer", "")))
                else:
                    history.append(("assistant", f"⚠️ {error_text(r)}"))
            except requests.RequestException as re:
                history.append(("assistant", f"⚠️ Request failed: {re}"))
            st.rerun()

st.markdown("---")
st.markdown("## Notes")
st.markdown("""
- **Backend requirement:** Ensure the FastAPI backend is running at the configured URL (`http://localhost:8000` by default).
- **Files:** `.md`, `.txt` and `.docx` research files are supported; files are read in name order.
- **Today marker:** the red dashed line is drawn only when the chosen date falls inside the chart's time columns.
""")
