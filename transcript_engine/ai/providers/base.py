"""Base interfaces for text generation providers and models."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass
class ModelResponse:
  """Text output plus token usage of one generation call."""

  content: str
  input_tokens: int = 0
  output_tokens: int = 0


class AIModel(ABC):
  """Abstract base class for text generation models."""

  name: str

  @abstractmethod
  async def generate(self, prompt: str, *, max_tokens: int) -> ModelResponse:
    """Generate a response for the given prompt within an output-token budget."""


class Provider(ABC):
  """Abstract base class for text generation providers."""

  name: str

  @abstractmethod
  def get_model(self, model: str | None = None) -> AIModel:
    """Return the model client for the provider."""
