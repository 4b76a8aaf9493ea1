"""Pricing table and token cost calculation for Claude models."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import asdict, dataclass
from typing import Any, Literal

PricingTier = Literal["standard", "over_limit"]

DEFAULT_PRICING_MODEL = "claude-sonnet-4-5-20250929"


@dataclass(frozen=True)
class ModelPricing:
  """USD prices per million tokens for one model."""

  name: str
  input_per_1m: float
  output_per_1m: float
  # Long-prompt tier; only set for models whose price depends on prompt length.
  input_per_1m_over_limit: float | None = None
  output_per_1m_over_limit: float | None = None
  token_limit_threshold: int | None = None

  @property
  def is_dynamic(self) -> bool:
    return self.token_limit_threshold is not None


MODEL_PRICING: dict[str, ModelPricing] = {
  "claude-haiku-4-5-20251001": ModelPricing(name="Haiku 4.5", input_per_1m=0.80, output_per_1m=4.00),
  "claude-3-7-sonnet-20250219": ModelPricing(name="Sonnet 3.7", input_per_1m=3.00, output_per_1m=15.00),
  "claude-sonnet-4-5-20250929": ModelPricing(name="Sonnet 4.5", input_per_1m=3.00, output_per_1m=15.00, input_per_1m_over_limit=6.00, output_per_1m_over_limit=22.50, token_limit_threshold=200_000),
  "claude-opus-4-1-20250805": ModelPricing(name="Opus 4.1", input_per_1m=15.00, output_per_1m=75.00),
}


@dataclass(frozen=True)
class CostBreakdown:
  """Cost of one call, rounded to micro-dollars."""

  input_cost: float
  output_cost: float
  total_cost: float
  input_tokens: int
  output_tokens: int
  total_tokens: int
  model_name: str
  pricing_tier: PricingTier | None = None
  input_per_1m: float | None = None
  output_per_1m: float | None = None
  note: str | None = None

  def as_dict(self) -> dict[str, Any]:
    return {key: value for key, value in asdict(self).items() if value is not None}


@dataclass(frozen=True)
class CumulativeCost:
  """Aggregated token and cost totals across many calls."""

  total_input_tokens: int
  total_output_tokens: int
  total_tokens: int
  total_cost: float
  record_count: int

  def as_dict(self) -> dict[str, Any]:
    return asdict(self)


def get_pricing(model: str) -> ModelPricing:
  """Return pricing for a model, falling back to Sonnet 4.5 for unknown ids."""
  return MODEL_PRICING.get(model, MODEL_PRICING[DEFAULT_PRICING_MODEL])


def pricing_for_prompt_length(model: str, input_tokens: int) -> tuple[float, float, PricingTier]:
  """Resolve the (input, output) per-million rates for a prompt of the given size."""
  pricing = get_pricing(model)
  if pricing.is_dynamic and pricing.token_limit_threshold is not None and input_tokens > pricing.token_limit_threshold:
    return float(pricing.input_per_1m_over_limit or 0.0), float(pricing.output_per_1m_over_limit or 0.0), "over_limit"
  return pricing.input_per_1m, pricing.output_per_1m, "standard"


def calculate_cost(input_tokens: int, output_tokens: int, model: str) -> CostBreakdown:
  """Price a single call."""
  pricing = get_pricing(model)
  price_in, price_out, tier = pricing_for_prompt_length(model, input_tokens)

  input_cost = (input_tokens / 1_000_000) * price_in
  output_cost = (output_tokens / 1_000_000) * price_out

  # Tier details are only meaningful for models with length-based pricing.
  if not pricing.is_dynamic:
    return CostBreakdown(
      input_cost=round(input_cost, 6),
      output_cost=round(output_cost, 6),
      total_cost=round(input_cost + output_cost, 6),
      input_tokens=input_tokens,
      output_tokens=output_tokens,
      total_tokens=input_tokens + output_tokens,
      model_name=pricing.name,
    )

  note = f"{pricing.name} higher pricing tier (prompt > {pricing.token_limit_threshold // 1000}K tokens)" if tier == "over_limit" and pricing.token_limit_threshold else None
  return CostBreakdown(
    input_cost=round(input_cost, 6),
    output_cost=round(output_cost, 6),
    total_cost=round(input_cost + output_cost, 6),
    input_tokens=input_tokens,
    output_tokens=output_tokens,
    total_tokens=input_tokens + output_tokens,
    model_name=pricing.name,
    pricing_tier=tier,
    input_per_1m=price_in,
    output_per_1m=price_out,
    note=note,
  )


def calculate_cumulative_cost(usage: Iterable[Mapping[str, Any]]) -> CumulativeCost:
  """Aggregate cost over usage entries shaped like ``{input_tokens, output_tokens, model}``."""
  total_input = 0
  total_output = 0
  total_cost = 0.0
  count = 0
  for entry in usage:
    # Missing counts are treated as zero so partial usage payloads still aggregate.
    in_tokens = int(entry.get("input_tokens") or 0)
    out_tokens = int(entry.get("output_tokens") or 0)
    model = str(entry.get("model") or DEFAULT_PRICING_MODEL)
    total_input += in_tokens
    total_output += out_tokens
    total_cost += calculate_cost(in_tokens, out_tokens, model).total_cost
    count += 1

  return CumulativeCost(total_input_tokens=total_input, total_output_tokens=total_output, total_tokens=total_input + total_output, total_cost=round(total_cost, 6), record_count=count)


def extract_usage(usage: Any) -> dict[str, int]:
  """Normalize an Anthropic ``usage`` object (or dict) into plain token counts."""
  if usage is None:
    return {"input_tokens": 0, "output_tokens": 0}

  def _read(key: str) -> int:
    if isinstance(usage, Mapping):
      return int(usage.get(key) or 0)
    return int(getattr(usage, key, 0) or 0)

  return {
    "input_tokens": _read("input_tokens"),
    "output_tokens": _read("output_tokens"),
    "cache_creation_input_tokens": _read("cache_creation_input_tokens"),
    "cache_read_input_tokens": _read("cache_read_input_tokens"),
  }


def format_cost(cost_usd: float) -> str:
  """Render a USD amount with micro/milli suffixes for tiny values."""
  if cost_usd < 0.001:
    return f"${cost_usd * 1_000_000:.2f}µ"
  if cost_usd < 0.01:
    return f"${cost_usd * 1000:.2f}m"
  return f"${cost_usd:.4f}"


def format_tokens(tokens: int) -> str:
  """Render a token count as 1.2K / 3.45M."""
  if tokens >= 1_000_000:
    return f"{tokens / 1_000_000:.2f}M"
  if tokens >= 1000:
    return f"{tokens / 1000:.1f}K"
  return str(tokens)


def pricing_table() -> dict[str, dict[str, Any]]:
  """Return the pricing table as JSON-friendly dictionaries."""
  return {model: {key: value for key, value in asdict(pricing).items() if value is not None} for model, pricing in MODEL_PRICING.items()}
