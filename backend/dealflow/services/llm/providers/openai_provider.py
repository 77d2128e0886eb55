from __future__ import annotations

from openai import OpenAI

from dealflow.config import Settings
from dealflow.services.llm.types import LLMProviderError


class OpenAIProvider:
    name = "openai"

    def __init__(self, settings: Settings) -> None:
        if not settings.openai_api_key:
            raise LLMProviderError("OPENAI_API_KEY not configured", retryable=False)
        self._client = OpenAI(api_key=settings.openai_api_key)

    def generate(
        self,
        *,
        model: str,
        prompt: str,
        timeout_seconds: int,
        use_web_search: bool = False,
    ) -> str:
        try:
            if use_web_search:
                # Search tooling lives on the Responses API only
                response = self._client.responses.create(
                    model=model,
                    input=prompt,
                    tools=[{"type": "web_search_preview"}],
                    timeout=timeout_seconds,
                )
                return str(response.output_text or "").strip()
            response = self._client.chat.completions.create(
                model=model,
                messages=[{"role": "user", "content": prompt}],
                timeout=timeout_seconds,
            )
            content = response.choices[0].message.content if response.choices else ""
            return str(content or "").strip()
        except Exception as exc:
            raise LLMProviderError(str(exc), retryable=True) from exc
