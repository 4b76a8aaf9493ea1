"""Per-model output ceilings for single transcripts and 4-episode series."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class OutputCeilings:
  """Maximum output tokens requested per work item kind."""

  single: int
  series: int


_DEFAULT_CEILINGS = OutputCeilings(single=16000, series=32000)

_MODEL_CEILINGS: dict[str, OutputCeilings] = {
  "claude-haiku-4-5-20251001": OutputCeilings(single=16000, series=32000),
  "claude-3-7-sonnet-20250219": OutputCeilings(single=16000, series=64000),
  "claude-sonnet-4-5-20250929": OutputCeilings(single=16000, series=64000),
  # Opus 4.1 caps output at 32K tokens.
  "claude-opus-4-1-20250805": OutputCeilings(single=16000, series=32000),
}


def get_output_ceilings(model: str) -> OutputCeilings:
  """Return output ceilings for a model, with conservative defaults for unknown ids."""
  return _MODEL_CEILINGS.get(model, _DEFAULT_CEILINGS)
