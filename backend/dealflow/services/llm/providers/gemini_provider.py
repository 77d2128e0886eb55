from __future__ import annotations

from typing import Optional

from google import genai
from google.genai import types

from dealflow.config import Settings
from dealflow.services.llm.types import LLMProviderError


class GeminiProvider:
    name = "gemini"

    def __init__(self, settings: Settings) -> None:
        if not settings.gemini_api_key:
            raise LLMProviderError("GEMINI_API_KEY not configured", retryable=False)
        self._client = genai.Client(api_key=settings.gemini_api_key)

    def generate(
        self,
        *,
        model: str,
        prompt: str,
        timeout_seconds: int,
        use_web_search: bool = False,
    ) -> str:
        # google-genai takes the deadline in milliseconds
        http_options = types.HttpOptions(timeout=timeout_seconds * 1000)
        try:
            cfg: Optional[types.GenerateContentConfig]
            if use_web_search:
                google_search_tool = types.Tool(google_search=types.GoogleSearch())
                cfg = types.GenerateContentConfig(tools=[google_search_tool], http_options=http_options)
            else:
                cfg = types.GenerateContentConfig(http_options=http_options)
            response = self._client.models.generate_content(
                model=model,
                contents=prompt,
                config=cfg,
            )
            return str(response.text or "").strip()
        except Exception as exc:
            raise LLMProviderError(str(exc), retryable=True) from exc
