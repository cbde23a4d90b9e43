from __future__ import annotations

try:
    from openai import OpenAI as _OpenAI
except ImportError:
    _OpenAI = None  # type: ignore[assignment,misc]

from prpanel_core.providers.base import REQUEST_TIMEOUT, BaseModelClient


class OpenAIClient(BaseModelClient):
    MODEL = "gpt-4o"
    TEMPERATURE = 0.1

    def __init__(self, api_key: str, timeout: float = REQUEST_TIMEOUT):
        if _OpenAI is None:
            raise ImportError(
                "The 'openai' package is required for this provider. " "Install it with: pip install 'prpanel[openai]'"
            )
        self.client = _OpenAI(api_key=api_key, timeout=timeout)

    def _call_api(self, text: str, model: str, temperature: float) -> str:
        response = self.client.chat.completions.create(
            model=model,
            messages=[{"role": "user", "content": text}],
            temperature=temperature,
            max_tokens=self.MAX_TOKENS,
        )
        return response.choices[0].message.content or ""
