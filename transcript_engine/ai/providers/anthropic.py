"""Anthropic Claude provider implementation using the anthropic SDK."""

from __future__ import annotations

import logging
from typing import Final

import anthropic
from anthropic import AsyncAnthropic

from transcript_engine.ai.errors import UpstreamError, is_rate_limited, is_transient
from transcript_engine.ai.providers.base import AIModel, ModelResponse, Provider
from transcript_engine.ai.utils.cost import extract_usage

logger = logging.getLogger(__name__)


class AnthropicModel(AIModel):
  """Claude model client returning text and token usage."""

  def __init__(self, name: str, client: AsyncAnthropic) -> None:
    self.name: str = name
    self._client = client

  async def generate(self, prompt: str, *, max_tokens: int) -> ModelResponse:
    """Generate a text response from Claude."""
    try:
      message = await self._client.messages.create(model=self.name, max_tokens=max_tokens, messages=[{"role": "user", "content": prompt}])

    except anthropic.APIStatusError as exc:
      status_code = exc.status_code
      text = f"Anthropic API error {status_code}: {exc.message}"
      raise UpstreamError(text, transient=is_transient(status_code, text), rate_limited=is_rate_limited(status_code, text), status_code=status_code) from exc

    except anthropic.APIConnectionError as exc:
      # Covers timeouts as well; both are network-level and retryable.
      raise UpstreamError(f"Anthropic connection error: {exc}", transient=True) from exc

    content = "".join(block.text for block in message.content if getattr(block, "type", None) == "text")
    usage = extract_usage(message.usage)
    logger.debug("Anthropic response model=%s input_tokens=%d output_tokens=%d chars=%d", self.name, usage["input_tokens"], usage["output_tokens"], len(content))
    if message.stop_reason == "max_tokens":
      logger.warning("Anthropic response truncated at max_tokens=%d for model=%s", max_tokens, self.name)

    return ModelResponse(content=content, input_tokens=usage["input_tokens"], output_tokens=usage["output_tokens"])


class AnthropicProvider(Provider):
  """Anthropic provider bound to one caller-supplied API key."""

  _DEFAULT_MODEL: Final[str] = "claude-sonnet-4-5-20250929"

  def __init__(self, api_key: str, *, base_url: str | None = None, timeout_seconds: float = 600.0) -> None:
    if not api_key:
      raise ValueError("An Anthropic API key is required.")
    self.name: str = "anthropic"
    self._client = AsyncAnthropic(api_key=api_key, base_url=base_url, timeout=timeout_seconds, max_retries=0)

  def get_model(self, model: str | None = None) -> AIModel:
    """Return a Claude model client."""
    return AnthropicModel(model or self._DEFAULT_MODEL, self._client)

  async def aclose(self) -> None:
    """Release the underlying HTTP connection pool."""
    await self._client.close()
