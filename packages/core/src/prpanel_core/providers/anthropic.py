from __future__ import annotations

from prpanel_core.providers.base import REQUEST_TIMEOUT, BaseModelClient


class AnthropicClient(BaseModelClient):
    MODEL = "claude-sonnet-4-20250514"
    TEMPERATURE = 0.1

    def __init__(self, api_key: str, timeout: float = REQUEST_TIMEOUT):
        try:
            from anthropic import Anthropic
        except ImportError:
            raise ImportError(
                "The 'anthropic' package is required for this provider. "
                "Install it with: pip install 'prpanel[anthropic]'"
            )
        self.client = Anthropic(api_key=api_key, timeout=timeout)

    def _call_api(self, text: str, model: str, temperature: float) -> str:
        # anthropic is optional; __init__ already checked it is importable.
        from anthropic.types import TextBlock

        response = self.client.messages.create(
            model=model,
            messages=[{"role": "user", "content": text}],
            temperature=temperature,
            max_tokens=self.MAX_TOKENS,
        )
        text_blocks = [block.text for block in response.content if isinstance(block, TextBlock)]
        return "".join(text_blocks).strip()
