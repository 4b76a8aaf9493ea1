"""Per-work-item prompt composition on top of the caller's template."""

from __future__ import annotations

from collections.abc import Sequence

from transcript_engine.jobs.models import GenerationUnit


def _participants(unit: GenerationUnit) -> str:
  return f"""PARTICIPANTS (use exactly these details):
- Coach: {unit.coach}
- Client: {unit.client}
- Location: {unit.location}
- Focus niche: {unit.niche}"""


def build_single_prompt(template: str, unit: GenerationUnit, *, position: int, total: int) -> str:
  """Prompt for one standalone transcript."""
  return f"""{template}

{_participants(unit)}

Please generate transcript {position} of {total}. Generate ONE complete transcript following all the specifications above. Begin with a header containing "**Coach:** {unit.coach}" and "**Client:** {unit.client}" lines. Include realistic names, emails, and a full 25-30 minute conversation with timestamps."""


def build_series_prompt(template: str, episodes: Sequence[GenerationUnit], *, total: int) -> str:
  """Prompt for all episodes of one series in a single response."""
  first = episodes[0]
  count = len(episodes)
  headings = "\n".join(f"# Episode {episode.episode_number}" for episode in episodes)
  return f"""{template}

{_participants(first)}

Please generate a SERIES of {count} consecutive coaching sessions between the same coach and client (transcripts {first.index + 1}-{first.index + count} of {total}). Each session builds on the previous one: reference earlier commitments, show progress, and introduce a new challenge.

FORMAT REQUIREMENTS:
- Start each session with its own heading line, exactly:
{headings}
- Under each heading include "**Coach:** {first.coach}" and "**Client:** {first.client}" lines.
- Each episode is a complete 25-30 minute conversation with timestamps.
- Do not add any text before "# Episode 1" or after the last episode."""
