# backend/app/research_store.py
"""
Session-keyed research context.

Chart generation stores the extracted corpus here; the analysis and chat calls
read it back by session id. Requests that do not carry a session id get the
most recent upload, which is last-write-wins across clients.
"""
import logging
import os
import threading
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from backend.app.errors import ResearchNotFoundError

logger = logging.getLogger("uvicorn.error")

RESEARCH_MAX_SESSIONS = int(os.getenv("RESEARCH_MAX_SESSIONS", "32"))


@dataclass(frozen=True)
class ResearchContext:
    session_id: str
    text: str
    file_names: List[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class ResearchStore:
    def __init__(self, max_sessions: int = RESEARCH_MAX_SESSIONS):
        self.max_sessions = max(1, int(max_sessions))
        self._lock = threading.Lock()
        self._sessions: "OrderedDict[str, ResearchContext]" = OrderedDict()

    def create(self, text: str, file_names: Optional[List[str]] = None) -> ResearchContext:
        ctx = ResearchContext(session_id=uuid.uuid4().hex, text=text or "", file_names=list(file_names or []))
        with self._lock:
            self._sessions[ctx.session_id] = ctx
            while len(self._sessions) > self.max_sessions:
                evicted, _ = self._sessions.popitem(last=False)
                logger.info("Evicted research session %s", evicted)
        return ctx

    def get(self, session_id: Optional[str] = None) -> ResearchContext:
        with self._lock:
            if session_id:
                ctx = self._sessions.get(session_id)
                if ctx is None:
                    raise ResearchNotFoundError(f"Unknown research session: {session_id}")
                return ctx
            if not self._sessions:
                raise ResearchNotFoundError("No research has been uploaded yet.")
            return next(reversed(self._sessions.values()))

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
