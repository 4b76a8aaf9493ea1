"""Participant metadata (coach/client combos) generated by a small upstream model."""

from __future__ import annotations

import json
import logging
import re
from typing import Literal, Protocol

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from transcript_engine.ai.client import UpstreamClient
from transcript_engine.jobs.errors import PlanMismatchError

logger = logging.getLogger(__name__)

NICHES: tuple[str, ...] = (
  "residential sales",
  "investment properties",
  "first-time buyers",
  "commercial real estate",
  "property management",
  "wholesaling",
  "real estate marketing",
  "investor networking",
)

_FENCE_PATTERN = re.compile(r"```(?:json)?\s*([\s\S]*?)```")


class Combo(BaseModel):
  """One coach/client pairing tagged as a series or a single."""

  model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

  coach: str = Field(min_length=1)
  client: str = Field(min_length=1)
  location: str = Field(min_length=1)
  niche: str = Field(min_length=1)
  type: Literal["series", "single"]


class ComboSource(Protocol):
  """Anything that can supply participant metadata for a plan."""

  async def generate(self, series_count: int, single_count: int) -> list[Combo]:
    """Return exactly ``series_count + single_count`` combos."""
    ...


def build_combo_prompt(series_count: int, single_count: int) -> str:
  total = series_count + single_count
  niches = ", ".join(NICHES)
  example = ",\n  ".join('{"coach": "Name", "client": "Name", "location": "City, STATE", "niche": "niche", "type": "series"}' for _ in range(min(3, series_count)))
  if example:
    example += ",\n  "
  return f"""You must generate exactly {total} coach/client combinations in JSON format.

STRUCTURE:
- {series_count} items with "type": "series" (for 4-episode series)
- {single_count} items with "type": "single" (for standalone transcripts)

For EACH combination:
- coach: Diverse name (male or female, different ethnicities)
- client: Diverse name (male or female, different ethnicities)
- location: US city with state abbreviation (e.g., "Austin, TX")
- niche: One of these ({niches})
- type: "series" or "single"

REQUIREMENTS:
- No name appears more than once
- At least 3 different coach genders/identities
- At least 3 different client genders/identities
- At least 5 different US states
- Diverse niches

OUTPUT FORMAT - return ONLY this JSON, nothing else:
[
  {example}...{single_count} more with "type": "single"
]

CRITICAL:
1. Return ONLY the JSON array
2. EXACTLY {series_count} items with "type": "series"
3. EXACTLY {single_count} items with "type": "single"
4. Total: EXACTLY {total} items
5. No markdown, no explanations, no code blocks"""


def extract_json_text(text: str) -> str:
  """Strip an optional fenced code block around a JSON payload."""
  stripped = text.strip()
  match = _FENCE_PATTERN.search(stripped)
  if match:
    return match.group(1).strip()
  return stripped


def parse_combos(text: str, series_count: int, single_count: int) -> list[Combo]:
  """Parse and strictly validate a combo list against the expected structure."""
  json_text = extract_json_text(text)
  try:
    raw = json.loads(json_text)
  except json.JSONDecodeError as exc:
    raise PlanMismatchError(f"Failed to parse combo JSON: {exc.msg}. Response: {json_text[:200]}") from exc

  if not isinstance(raw, list):
    raise PlanMismatchError(f"Expected a JSON array of combos but got {type(raw).__name__}.")

  expected = series_count + single_count
  if len(raw) != expected:
    raise PlanMismatchError(f"Expected {expected} combos but got {len(raw)}.")

  combos: list[Combo] = []
  for position, item in enumerate(raw):
    try:
      combos.append(Combo.model_validate(item))
    except ValidationError as exc:
      raise PlanMismatchError(f"Combo {position} is malformed: {exc.errors()[0].get('msg', 'invalid')}") from exc

  got_series = sum(1 for combo in combos if combo.type == "series")
  if got_series != series_count:
    raise PlanMismatchError(f"Expected {series_count} series combos but got {got_series}.")
  got_single = len(combos) - got_series
  if got_single != single_count:
    raise PlanMismatchError(f"Expected {single_count} single combos but got {got_single}.")

  seen: set[tuple[str, str]] = set()
  for combo in combos:
    key = (combo.coach.lower(), combo.client.lower())
    if key in seen:
      raise PlanMismatchError(f"Duplicate combo: {combo.coach} / {combo.client}.")
    seen.add(key)

  return combos


class ComboGenerator:
  """Ask the metadata model for participant combos and validate the answer."""

  def __init__(self, client: UpstreamClient, *, model: str, max_tokens: int = 4000) -> None:
    self._client = client
    self._model = model
    self._max_tokens = max_tokens

  async def generate(self, series_count: int, single_count: int) -> list[Combo]:
    prompt = build_combo_prompt(series_count, single_count)
    logger.info("Requesting %d combos (%d series, %d single) from %s", series_count + single_count, series_count, single_count, self._model)
    result = await self._client.invoke(prompt, self._model, self._max_tokens)
    return parse_combos(result.text, series_count, single_count)
