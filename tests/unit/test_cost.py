from __future__ import annotations

from types import SimpleNamespace

import pytest

from transcript_engine.ai.utils.cost import calculate_cost, calculate_cumulative_cost, extract_usage, format_cost, format_tokens, get_pricing, pricing_table


def test_standard_tier_prices_per_million_tokens() -> None:
  breakdown = calculate_cost(1_000_000, 1_000_000, "claude-sonnet-4-5-20250929")

  assert breakdown.input_cost == pytest.approx(3.0)
  assert breakdown.output_cost == pytest.approx(15.0)
  assert breakdown.total_cost == pytest.approx(18.0)
  assert breakdown.pricing_tier == "standard"
  assert breakdown.note is None


def test_long_prompts_switch_to_the_higher_tier() -> None:
  breakdown = calculate_cost(250_000, 1_000_000, "claude-sonnet-4-5-20250929")

  assert breakdown.pricing_tier == "over_limit"
  assert breakdown.input_cost == pytest.approx(1.5)
  assert breakdown.output_cost == pytest.approx(22.5)
  assert "200K" in (breakdown.note or "")


def test_flat_priced_models_omit_tier_details() -> None:
  breakdown = calculate_cost(1_000_000, 1_000_000, "claude-haiku-4-5-20251001")

  assert breakdown.total_cost == pytest.approx(4.8)
  assert breakdown.pricing_tier is None
  assert "pricing_tier" not in breakdown.as_dict()


def test_unknown_models_are_priced_as_the_default_model() -> None:
  assert get_pricing("made-up-model").name == "Sonnet 4.5"
  assert calculate_cost(1000, 1000, "made-up-model").total_cost == calculate_cost(1000, 1000, "claude-sonnet-4-5-20250929").total_cost


def test_cumulative_cost_sums_each_call_at_its_own_rate() -> None:
  usage = [
    {"input_tokens": 1_000_000, "output_tokens": 0, "model": "claude-haiku-4-5-20251001"},
    {"input_tokens": 0, "output_tokens": 1_000_000, "model": "claude-opus-4-1-20250805"},
    {"model": "claude-haiku-4-5-20251001"},
  ]

  total = calculate_cumulative_cost(usage)

  assert total.total_input_tokens == 1_000_000
  assert total.total_output_tokens == 1_000_000
  assert total.total_cost == pytest.approx(0.8 + 75.0)
  assert total.record_count == 3


def test_extract_usage_reads_objects_and_mappings() -> None:
  from_object = extract_usage(SimpleNamespace(input_tokens=12, output_tokens=34, cache_read_input_tokens=5))
  from_mapping = extract_usage({"input_tokens": 7, "output_tokens": None})

  assert from_object == {"input_tokens": 12, "output_tokens": 34, "cache_creation_input_tokens": 0, "cache_read_input_tokens": 5}
  assert from_mapping["input_tokens"] == 7
  assert from_mapping["output_tokens"] == 0
  assert extract_usage(None) == {"input_tokens": 0, "output_tokens": 0}


def test_format_helpers() -> None:
  assert format_cost(0.0005) == "$500.00µ"
  assert format_cost(0.005) == "$5.00m"
  assert format_cost(1.5) == "$1.5000"
  assert format_tokens(999) == "999"
  assert format_tokens(1500) == "1.5K"
  assert format_tokens(2_500_000) == "2.50M"


def test_pricing_table_is_json_friendly() -> None:
  table = pricing_table()

  assert table["claude-sonnet-4-5-20250929"]["token_limit_threshold"] == 200_000
  assert "token_limit_threshold" not in table["claude-haiku-4-5-20251001"]
