from __future__ import annotations

import logging
import time
from typing import Dict, List, Optional, Tuple

from dealflow.config import Settings, get_settings
from dealflow.services.llm.providers.anthropic_provider import AnthropicProvider
from dealflow.services.llm.providers.gemini_provider import GeminiProvider
from dealflow.services.llm.providers.openai_provider import OpenAIProvider
from dealflow.services.llm.types import (
    LLMOrchestrationError,
    LLMProviderError,
    LLMRequest,
    LLMResponse,
    ModelAttemptTrace,
    classify_retryable_error,
    now_iso,
)

logger = logging.getLogger(__name__)

_PROVIDERS = {
    "gemini": GeminiProvider,
    "openai": OpenAIProvider,
    "anthropic": AnthropicProvider,
}
_DEFAULT_ROUTE = ("gemini", "gemini-2.0-flash")


def _is_retryable(exc: Exception) -> bool:
    if isinstance(exc, LLMProviderError) and exc.retryable:
        return True
    return classify_retryable_error(exc)


class LLMOrchestrator:
    """Runs a stage prompt across its configured provider routes.

    Routes are tried in order. Within a route, retryable failures (rate limits,
    timeouts, gateway errors) are retried with linear backoff up to
    ``stage_retry_max_attempts``; anything else moves on to the next route.
    Every attempt is traced with the request's metadata so a failed research job
    can say which providers it went through.
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._providers: Dict[str, object] = {}

    def _provider(self, name: str):
        key = str(name or "").strip().lower()
        if key not in self._providers:
            provider_cls = _PROVIDERS.get(key)
            if provider_cls is None:
                raise LLMProviderError(f"Unsupported LLM provider: {name}", retryable=False)
            self._providers[key] = provider_cls(self._settings)
        return self._providers[key]

    def _routes_for_stage(self, stage_name: str) -> List[Tuple[str, str]]:
        return self._settings.stage_model_routes(stage_name) or [_DEFAULT_ROUTE]

    def _attempt(
        self,
        request: LLMRequest,
        provider_name: str,
        model: str,
        retry_count: int,
    ) -> Tuple[ModelAttemptTrace, Optional[str], Optional[Exception]]:
        trace = ModelAttemptTrace(
            stage=request.stage.value,
            provider=provider_name,
            model=model,
            latency_ms=0,
            status="success",
            retry_count=retry_count,
            started_at=now_iso(),
            context=dict(request.metadata),
        )
        t0 = time.perf_counter()
        text: Optional[str] = None
        error: Optional[Exception] = None
        try:
            text = self._provider(provider_name).generate(
                model=model,
                prompt=request.prompt,
                timeout_seconds=max(1, int(request.timeout_seconds)),
                use_web_search=bool(request.use_web_search),
            )
            if request.expect_json and not str(text or "").strip():
                raise LLMProviderError("Empty response for JSON stage", retryable=False)
        except Exception as exc:
            error = exc
            trace.status = "retryable_error" if _is_retryable(exc) else "terminal_error"
            trace.error_class = exc.__class__.__name__
            trace.error_message = str(exc)[:500]
        trace.latency_ms = int((time.perf_counter() - t0) * 1000)
        trace.ended_at = now_iso()
        return trace, text, error

    def run_stage(self, request: LLMRequest) -> LLMResponse:
        attempts: List[ModelAttemptTrace] = []
        max_attempts = max(1, int(self._settings.stage_retry_max_attempts))
        backoff = max(0.0, float(self._settings.stage_retry_backoff_seconds))
        context = " ".join(f"{key}={value}" for key, value in sorted(request.metadata.items()))

        for provider_name, model in self._routes_for_stage(request.stage.value):
            for retry_count in range(max_attempts):
                trace, text, error = self._attempt(request, provider_name, model, retry_count)
                attempts.append(trace)
                if error is None:
                    logger.info(
                        "LLM stage=%s answered by %s:%s in %sms (attempt %s) %s",
                        request.stage.value, provider_name, model, trace.latency_ms, len(attempts), context,
                    )
                    return LLMResponse(text=text, provider=provider_name, model=model, attempts=attempts)

                logger.warning(
                    "LLM stage=%s %s:%s %s on retry %s: %s %s",
                    request.stage.value, provider_name, model, trace.status, retry_count, error, context,
                )
                if trace.status != "retryable_error" or retry_count == max_attempts - 1:
                    break
                if backoff > 0:
                    time.sleep(backoff * (retry_count + 1))

        logger.error(
            "LLM stage=%s exhausted %s attempt(s) across %s %s",
            request.stage.value, len(attempts), sorted({a.provider for a in attempts}), context,
        )
        raise LLMOrchestrationError(
            f"All model routes failed for stage={request.stage.value}",
            attempts=attempts,
        )
