from __future__ import annotations

from anthropic import Anthropic

from dealflow.config import Settings
from dealflow.services.llm.types import LLMProviderError

_WEB_SEARCH_TOOL = {"type": "web_search_20250305", "name": "web_search", "max_uses": 5}


class AnthropicProvider:
    name = "anthropic"

    def __init__(self, settings: Settings) -> None:
        if not settings.anthropic_api_key:
            raise LLMProviderError("ANTHROPIC_API_KEY not configured", retryable=False)
        self._client = Anthropic(api_key=settings.anthropic_api_key)

    def generate(
        self,
        *,
        model: str,
        prompt: str,
        timeout_seconds: int,
        use_web_search: bool = False,
    ) -> str:
        kwargs = {}
        if use_web_search:
            kwargs["tools"] = [_WEB_SEARCH_TOOL]
        try:
            response = self._client.messages.create(
                model=model,
                max_tokens=4000,
                messages=[{"role": "user", "content": prompt}],
                timeout=timeout_seconds,
                **kwargs,
            )
            text_parts = []
            for block in getattr(response, "content", []) or []:
                value = getattr(block, "text", None)
                if value:
                    text_parts.append(str(value))
            return "\n".join(text_parts).strip()
        except Exception as exc:
            raise LLMProviderError(str(exc), retryable=True) from exc
