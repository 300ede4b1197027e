# backend/app/services/llm_service.py
"""
Schema-constrained completion calls.

Behavior:
- Gemini (default) is called over its REST generateContent endpoint with a
  response schema, so the first candidate's first part is a JSON document.
- LLM_PROVIDER=openai sends the same request through the openai client with a
  json_schema response format.
- Every failure (non-2xx, malformed envelope, safety block, unparseable JSON)
  raises UpstreamAPIError and is retried by call_with_retry under a RetryPolicy.
- The parsed JSON is returned as-is; checking its shape is the caller's job.
"""

from __future__ import annotations
import json
import logging
import os
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, TypeVar

import openai
import requests

from backend.app.errors import UpstreamAPIError
from backend.app import observability

logger = logging.getLogger("uvicorn.error")

# --- ENV / configuration ---
LLM_PROVIDER = os.getenv("LLM_PROVIDER", "gemini").strip().lower()
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY") or os.getenv("API_KEY")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.5-flash-preview-09-2025")
GEMINI_API_BASE = os.getenv("GEMINI_API_BASE", "https://generativelanguage.googleapis.com/v1beta")
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
LLM_RETRY_ATTEMPTS = int(os.getenv("LLM_RETRY_ATTEMPTS", "3"))
LLM_RETRY_BACKOFF_SECONDS = float(os.getenv("LLM_RETRY_BACKOFF_SECONDS", "1.0"))
_timeout_raw = os.getenv("LLM_REQUEST_TIMEOUT")
LLM_REQUEST_TIMEOUT: Optional[float] = float(_timeout_raw) if _timeout_raw else None

T = TypeVar("T")


@dataclass(frozen=True)
class CompletionRequest:
    system_instruction: str
    user_query: str
    response_schema: Dict[str, Any]
    max_output_tokens: int = 8192
    temperature: float = 0.0
    name: str = "response"


# ------------- retry policy -------------
@dataclass(frozen=True)
class RetryPolicy:
    """Linear backoff: the wait before retry n is backoff_seconds * n."""
    max_attempts: int = 3
    backoff_seconds: float = 1.0

    def delay(self, attempt: int) -> float:
        return self.backoff_seconds * attempt


DEFAULT_RETRY_POLICY = RetryPolicy(max_attempts=LLM_RETRY_ATTEMPTS, backoff_seconds=LLM_RETRY_BACKOFF_SECONDS)


def call_with_retry(
    fn: Callable[[], T],
    policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    *,
    sleep: Callable[[float], None] = time.sleep,
    label: str = "LLM call",
) -> T:
    """
    Run ``fn`` up to ``policy.max_attempts`` times, sequentially.
    Sleeps only between attempts. The last error is re-raised as UpstreamAPIError.
    """
    attempts = max(1, policy.max_attempts)
    last_exc: Optional[Exception] = None
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except Exception as e:
            last_exc = e
            logger.warning("%s attempt %d failed: %s", label, attempt, str(e)[:300])
            if attempt < attempts:
                sleep(policy.delay(attempt))

    if isinstance(last_exc, UpstreamAPIError):
        raise last_exc
    raise UpstreamAPIError(str(last_exc) or type(last_exc).__name__) from last_exc


# ------------- envelope handling -------------
def _parse_json_text(text: str) -> Any:
    blob = (text or "").strip()
    if blob.startswith("```"):
        blob = blob.strip("` \n")
        if blob.lower().startswith("json"):
            blob = blob[4:].strip()
    try:
        return json.loads(blob)
    except json.JSONDecodeError as e:
        raise UpstreamAPIError(f"Model returned malformed JSON: {e}") from e


def extract_gemini_payload(result: Any) -> Any:
    """
    Pull the JSON document out of a generateContent response envelope.
    Raises UpstreamAPIError for a missing candidate/content/part or a safety block.
    """
    if not isinstance(result, dict):
        raise UpstreamAPIError("Invalid response from AI API")

    feedback = result.get("promptFeedback") or {}
    if isinstance(feedback, dict) and feedback.get("blockReason"):
        raise UpstreamAPIError(f"API call blocked due to safety rating: {feedback['blockReason']}")

    candidates = result.get("candidates")
    if not candidates or not isinstance(candidates, list) or not isinstance(candidates[0], dict):
        raise UpstreamAPIError("Invalid response from AI API")
    candidate = candidates[0]

    for rating in candidate.get("safetyRatings") or []:
        if isinstance(rating, dict) and rating.get("blocked"):
            raise UpstreamAPIError(f"API call blocked due to safety rating: {rating.get('category')}")
    if candidate.get("finishReason") == "SAFETY":
        raise UpstreamAPIError("API call blocked due to safety rating: finishReason=SAFETY")

    content = candidate.get("content")
    parts = content.get("parts") if isinstance(content, dict) else None
    if not parts or not isinstance(parts[0], dict) or "text" not in parts[0]:
        raise UpstreamAPIError("Invalid response from AI API")

    return _parse_json_text(parts[0]["text"])


def build_gemini_payload(request: CompletionRequest) -> Dict[str, Any]:
    return {
        "contents": [{"parts": [{"text": request.user_query}]}],
        "systemInstruction": {"parts": [{"text": request.system_instruction}]},
        "generationConfig": {
            "responseMimeType": "application/json",
            "responseSchema": request.response_schema,
            "maxOutputTokens": request.max_output_tokens,
            "temperature": request.temperature,
            "topP": 1,
            "topK": 1,
        },
    }


def to_json_schema(schema: Any) -> Any:
    """Gemini's OBJECT/STRING/... schema dialect -> lower-case JSON Schema for OpenAI."""
    if isinstance(schema, dict):
        out = {}
        for k, v in schema.items():
            if k == "type" and isinstance(v, str):
                out[k] = v.lower()
            else:
                out[k] = to_json_schema(v)
        return out
    if isinstance(schema, list):
        return [to_json_schema(v) for v in schema]
    return schema


# ------------- providers -------------
@dataclass
class GeminiClient:
    api_key: Optional[str] = GEMINI_API_KEY
    model: str = GEMINI_MODEL
    api_base: str = GEMINI_API_BASE
    timeout: Optional[float] = LLM_REQUEST_TIMEOUT
    session: Any = field(default_factory=requests.Session)

    provider = "gemini"

    @property
    def url(self) -> str:
        return f"{self.api_base.rstrip('/')}/models/{self.model}:generateContent"

    def complete(self, request: CompletionRequest) -> Any:
        if not self.api_key:
            raise UpstreamAPIError("GEMINI_API_KEY not set")
        resp = self.session.post(
            self.url,
            params={"key": self.api_key},
            json=build_gemini_payload(request),
            headers={"Content-Type": "application/json"},
            timeout=self.timeout,
        )
        if not resp.ok:
            raise UpstreamAPIError(
                f"API call failed with status: {resp.status_code} - {resp.text}", status=resp.status_code
            )
        try:
            result = resp.json()
        except ValueError as e:
            raise UpstreamAPIError("Invalid response from AI API") from e
        return extract_gemini_payload(result)


@dataclass
class OpenAIClient:
    api_key: Optional[str] = OPENAI_API_KEY
    model: str = OPENAI_MODEL
    timeout: Optional[float] = LLM_REQUEST_TIMEOUT
    client: Any = None

    provider = "openai"

    def _client(self):
        if self.client is None:
            if not self.api_key:
                raise UpstreamAPIError("OPENAI_API_KEY not set")
            kwargs = {"api_key": self.api_key}
            if self.timeout is not None:
                kwargs["timeout"] = self.timeout
            self.client = openai.OpenAI(**kwargs)
        return self.client

    def complete(self, request: CompletionRequest) -> Any:
        try:
            resp = self._client().chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": request.system_instruction},
                    {"role": "user", "content": request.user_query},
                ],
                max_tokens=request.max_output_tokens,
                temperature=request.temperature,
                response_format={
                    "type": "json_schema",
                    "json_schema": {"name": request.name, "schema": to_json_schema(request.response_schema)},
                },
            )
        except openai.APIStatusError as e:
            raise UpstreamAPIError(f"API call failed with status: {e.status_code} - {e.message}", status=e.status_code) from e
        except openai.OpenAIError as e:
            raise UpstreamAPIError(f"OpenAI request failed: {e}") from e

        choices = getattr(resp, "choices", None)
        if not choices:
            raise UpstreamAPIError("Invalid response from AI API")
        choice = choices[0]
        if getattr(choice, "finish_reason", None) == "content_filter":
            raise UpstreamAPIError("API call blocked due to safety rating: content_filter")
        message = getattr(choice, "message", None)
        refusal = getattr(message, "refusal", None)
        if refusal:
            raise UpstreamAPIError(f"API call blocked due to safety rating: {refusal}")
        content = getattr(message, "content", None)
        if not isinstance(content, str):
            raise UpstreamAPIError("Invalid response from AI API")
        return _parse_json_text(content)


def get_client(provider: str = LLM_PROVIDER):
    if provider == "openai":
        return OpenAIClient()
    if provider != "gemini":
        logger.warning("Unknown LLM_PROVIDER=%r, using gemini", provider)
    return GeminiClient()


# ------------- public entry point -------------
def generate_json(
    request: CompletionRequest,
    client: Any = None,
    policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    sleep: Callable[[float], None] = time.sleep,
) -> Any:
    """Send ``request`` with retries and return the parsed JSON payload."""
    client = client or get_client()
    provider = getattr(client, "provider", "custom")

    def _attempt():
        try:
            payload = client.complete(request)
        except Exception:
            observability.record_llm_attempt(provider, "failure")
            raise
        observability.record_llm_attempt(provider, "success")
        return payload

    payload = call_with_retry(_attempt, policy, sleep=sleep, label=f"{provider} {request.name}")
    logger.info("%s returned %s for %s", provider, type(payload).__name__, request.name)
    return payload
