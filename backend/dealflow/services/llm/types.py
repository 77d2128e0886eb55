from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class LLMStage(str, Enum):
    candidate_search = "candidate_search"
    entity_enrichment = "entity_enrichment"


@dataclass
class LLMRequest:
    stage: LLMStage
    prompt: str
    timeout_seconds: int = 60
    use_web_search: bool = False
    expect_json: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ModelAttemptTrace:
    stage: str
    provider: str
    model: str
    latency_ms: int
    status: str
    retry_count: int
    error_class: Optional[str] = None
    error_message: Optional[str] = None
    started_at: Optional[str] = None
    ended_at: Optional[str] = None
    context: Dict[str, Any] = field(default_factory=dict)

    def label(self) -> str:
        return f"{self.provider}:{self.model}:{self.status}"


@dataclass
class LLMResponse:
    text: str
    provider: str
    model: str
    attempts: List[ModelAttemptTrace] = field(default_factory=list)


class LLMOrchestrationError(RuntimeError):
    def __init__(
        self,
        message: str,
        *,
        attempts: Optional[List[ModelAttemptTrace]] = None,
    ) -> None:
        super().__init__(message)
        self.attempts = attempts or []


class LLMProviderError(RuntimeError):
    def __init__(self, message: str, *, retryable: bool = False) -> None:
        super().__init__(message)
        self.retryable = retryable


def classify_retryable_error(exc: Exception) -> bool:
    text = str(exc).lower()
    if "rate limit" in text or "429" in text:
        return True
    if "timeout" in text or "timed out" in text:
        return True
    if "connection reset" in text or "connection aborted" in text:
        return True
    if "502" in text or "503" in text or "504" in text:
        return True
    return False


_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def parse_json_object(text: str) -> Optional[Dict[str, Any]]:
    """Pull the first JSON object out of a model reply, tolerating code fences and prose."""
    cleaned = _FENCE_RE.sub("", str(text or "").strip())
    if not cleaned:
        return None
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError:
        start = cleaned.find("{")
        end = cleaned.rfind("}")
        if start < 0 or end <= start:
            return None
        try:
            parsed = json.loads(cleaned[start:end + 1])
        except json.JSONDecodeError:
            return None
    return parsed if isinstance(parsed, dict) else None


def now_iso() -> str:
    return datetime.utcnow().isoformat()
