"""
LLM providers: OpenRouter (OpenAI-compatible API) or Anthropic.

Both expose generate(prompt) -> str and raise on any failure; resilience is
added by the caller.
"""

import logging

import anthropic
from openai import OpenAI

from . import config

log = logging.getLogger(__name__)


class OpenRouterLLM:
    def __init__(
        self,
        api_key: str = config.OPENROUTER_API_KEY,
        base_url: str = config.OPENROUTER_BASE_URL,
        model: str = config.LLM_MODEL,
        timeout: float = config.LLM_TIMEOUT,
        max_tokens: int = config.LLM_MAX_TOKENS,
        client: OpenAI | None = None,
    ):
        self.model = model
        self.max_tokens = max_tokens
        # Retries are the circuit breaker's business, not the SDK's
        self.client = client or OpenAI(api_key=api_key, base_url=base_url, timeout=timeout, max_retries=0)

    def generate(self, prompt: str) -> str:
        resp = self.client.chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
            max_tokens=self.max_tokens,
        )
        content = resp.choices[0].message.content
        if not content:
            raise ValueError("LLM returned an empty response")
        return content.strip()


class AnthropicLLM:
    def __init__(
        self,
        api_key: str = config.ANTHROPIC_API_KEY,
        model: str = config.ANTHROPIC_MODEL,
        timeout: float = config.LLM_TIMEOUT,
        max_tokens: int = config.LLM_MAX_TOKENS,
        client: anthropic.Anthropic | None = None,
    ):
        self.model = model
        self.max_tokens = max_tokens
        self.client = client or anthropic.Anthropic(api_key=api_key, timeout=timeout, max_retries=0)

    def generate(self, prompt: str) -> str:
        response = self.client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            messages=[{"role": "user", "content": prompt}],
        )
        text = "".join(block.text for block in response.content if hasattr(block, "text"))
        if not text:
            raise ValueError("LLM returned an empty response")
        return text.strip()


PROVIDERS = {
    "openrouter": OpenRouterLLM,
    "anthropic": AnthropicLLM,
}


def get_llm(provider: str = config.LLM_PROVIDER):
    try:
        cls = PROVIDERS[provider.lower()]
    except KeyError:
        raise ValueError(f"Unknown LLM provider: {provider!r} (expected one of {sorted(PROVIDERS)})")
    log.info("Using LLM provider %s", provider)
    return cls()
