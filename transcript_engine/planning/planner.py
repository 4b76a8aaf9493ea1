"""Turn a requested artifact count into an ordered list of generation units."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from transcript_engine.jobs.errors import InvalidRequestError, PlanMismatchError
from transcript_engine.jobs.models import SERIES_EPISODES, GenerationUnit
from transcript_engine.planning.combos import Combo, ComboSource

logger = logging.getLogger(__name__)

# One 4-episode series per ten requested artifacts.
SERIES_PER_ARTIFACTS = 10


@dataclass(frozen=True)
class PlanStructure:
  """How a requested artifact count divides into series and singles."""

  total_count: int
  series_count: int
  single_count: int

  @property
  def combo_count(self) -> int:
    return self.series_count + self.single_count

  @property
  def unit_count(self) -> int:
    return self.series_count * SERIES_EPISODES + self.single_count


def compute_structure(total_count: int) -> PlanStructure:
  """Split ``total_count`` artifacts into series and singles.

  ``transcriptCount=23`` gives 2 series (8 episodes) and 15 singles, i.e.
  23 artifacts drawn from 17 combos.
  """
  if total_count <= 0:
    raise InvalidRequestError("transcriptCount must be a positive integer.")
  series_count = total_count // SERIES_PER_ARTIFACTS
  single_count = total_count - series_count * SERIES_EPISODES
  structure = PlanStructure(total_count=total_count, series_count=series_count, single_count=single_count)
  assert structure.unit_count == total_count
  return structure


def expand_combos(structure: PlanStructure, combos: Sequence[Combo]) -> list[GenerationUnit]:
  """Expand combos into units; each series becomes four consecutive episodes."""
  if len(combos) != structure.combo_count:
    raise PlanMismatchError(f"Expected {structure.combo_count} combos but got {len(combos)}.")

  units: list[GenerationUnit] = []
  series_seq = 0
  for combo in combos:
    if combo.type == "series":
      series_id = str(series_seq)
      series_seq += 1
      for episode in range(1, SERIES_EPISODES + 1):
        units.append(
          GenerationUnit(
            index=len(units),
            kind="series",
            coach=combo.coach,
            client=combo.client,
            location=combo.location,
            niche=combo.niche,
            series_id=series_id,
            episode_number=episode,
            total_episodes=SERIES_EPISODES,
          )
        )
    else:
      units.append(GenerationUnit(index=len(units), kind="single", coach=combo.coach, client=combo.client, location=combo.location, niche=combo.niche))

  if series_seq != structure.series_count or len(units) != structure.total_count:
    raise PlanMismatchError(f"Expected {structure.series_count} series and {structure.total_count} units but got {series_seq} series and {len(units)} units.")
  return units


async def build_plan(total_count: int, combo_source: ComboSource) -> list[GenerationUnit]:
  """Compute the structure, fetch combos and expand them into the unit plan."""
  structure = compute_structure(total_count)
  combos = await combo_source.generate(structure.series_count, structure.single_count)
  units = expand_combos(structure, combos)
  logger.info("Planned %d units (%d series, %d singles) from %d combos", len(units), structure.series_count, structure.single_count, structure.combo_count)
  return units
