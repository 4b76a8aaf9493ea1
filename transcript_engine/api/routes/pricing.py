from typing import Any

from fastapi import APIRouter

from transcript_engine.ai.errors import rate_limit_counter
from transcript_engine.ai.utils.cost import DEFAULT_PRICING_MODEL, pricing_table
from transcript_engine.jobs.splitting import split_fallback_counter

router = APIRouter()


@router.get("/pricing")
async def get_pricing() -> dict[str, Any]:
  """Per-million-token prices for the supported Claude models."""
  return {"defaultModel": DEFAULT_PRICING_MODEL, "models": pricing_table()}


@router.get("/metrics")
async def get_metrics() -> dict[str, int]:
  """Process-wide counters for rate-limited responses and series split fallbacks."""
  return {"rateLimitedResponses": rate_limit_counter.value, "seriesSplitFallbacks": split_fallback_counter.value}
