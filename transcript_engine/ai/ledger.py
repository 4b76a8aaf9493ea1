"""Running token and cost accounting for a single job."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from transcript_engine.ai.utils.cost import calculate_cumulative_cost, format_cost, format_tokens
from transcript_engine.jobs.models import UnitKind


@dataclass(frozen=True)
class UsageRecord:
  """Token usage of one successful upstream call."""

  input_tokens: int
  output_tokens: int
  model: str
  unit_kind: UnitKind


@dataclass
class CostLedger:
  """Accumulate per-call usage; totals always equal the sum of the records."""

  _records: list[UsageRecord] = field(default_factory=list)
  _input_tokens: int = 0
  _output_tokens: int = 0

  def record(self, *, input_tokens: int, output_tokens: int, model: str, unit_kind: UnitKind) -> UsageRecord:
    """Append one usage record and fold it into the running totals."""
    if input_tokens < 0 or output_tokens < 0:
      raise ValueError("Token counts must be non-negative.")
    usage = UsageRecord(input_tokens=input_tokens, output_tokens=output_tokens, model=model, unit_kind=unit_kind)
    # No await between append and fold keeps both updates atomic on the event loop.
    self._records.append(usage)
    self._input_tokens += input_tokens
    self._output_tokens += output_tokens
    return usage

  @property
  def input_tokens(self) -> int:
    return self._input_tokens

  @property
  def output_tokens(self) -> int:
    return self._output_tokens

  @property
  def total_tokens(self) -> int:
    return self._input_tokens + self._output_tokens

  @property
  def records(self) -> tuple[UsageRecord, ...]:
    return tuple(self._records)

  def summary(self) -> dict[str, Any]:
    """Return totals with cost, suitable for progress events and final stats."""
    cumulative = calculate_cumulative_cost({"input_tokens": r.input_tokens, "output_tokens": r.output_tokens, "model": r.model} for r in self._records)
    return {
      "inputTokens": self._input_tokens,
      "outputTokens": self._output_tokens,
      "totalTokens": self.total_tokens,
      "totalCost": cumulative.total_cost,
      "calls": cumulative.record_count,
      "formattedCost": format_cost(cumulative.total_cost),
      "formattedTokens": format_tokens(self.total_tokens),
    }
