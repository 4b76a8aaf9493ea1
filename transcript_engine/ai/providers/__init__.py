"""Provider implementations."""

from transcript_engine.ai.providers.anthropic import AnthropicModel, AnthropicProvider
from transcript_engine.ai.providers.base import AIModel, ModelResponse, Provider

__all__ = ["AIModel", "AnthropicModel", "AnthropicProvider", "ModelResponse", "Provider"]
