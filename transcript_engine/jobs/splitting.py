"""Split one series response into its episode segments."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from transcript_engine.utils.counters import ProcessCounter

logger = logging.getLogger(__name__)

# Headings such as "# Episode 2", "## EPISODE 3: Title", "**Episode 4**" or "Episode 1 of 4".
_EPISODE_MARKER = re.compile(r"^[ \t]*(?:#{1,6}[ \t]*)?(?:\*\*)?[ \t]*Episode[ \t]+(\d+)\b", re.IGNORECASE | re.MULTILINE)


@dataclass(frozen=True)
class SplitResult:
  segments: list[str]
  used_fallback: bool


# Process-wide tally of series responses that needed the line-split fallback.
split_fallback_counter = ProcessCounter()


def split_series_episodes(text: str, count: int = 4) -> SplitResult:
  """Return exactly ``count`` segments, by episode markers when possible.

  With fewer than ``count`` markers the text is cut into ``count`` runs of
  roughly equal line counts instead.
  """
  if count <= 0:
    raise ValueError("count must be positive.")

  starts = [match.start() for match in _EPISODE_MARKER.finditer(text)]
  if len(starts) >= count:
    # Extra markers (e.g. "Episode 2" mentioned inside a body) merge into the last segment.
    boundaries = starts[:count]
    segments = []
    for position, start in enumerate(boundaries):
      end = boundaries[position + 1] if position + 1 < count else len(text)
      segments.append(text[start:end].strip())
    # Any preamble before the first marker belongs to episode one.
    preamble = text[: boundaries[0]].strip()
    if preamble:
      segments[0] = f"{preamble}\n\n{segments[0]}"
    return SplitResult(segments=segments, used_fallback=False)

  logger.warning("Found %d episode markers, expected %d; falling back to an even line split.", len(starts), count)
  split_fallback_counter.increment()
  return SplitResult(segments=_split_even_lines(text, count), used_fallback=True)


def _split_even_lines(text: str, count: int) -> list[str]:
  lines = text.splitlines()
  size, extra = divmod(len(lines), count)
  segments = []
  cursor = 0
  for position in range(count):
    # The first ``extra`` chunks take one additional line.
    step = size + (1 if position < extra else 0)
    segments.append("\n".join(lines[cursor : cursor + step]).strip())
    cursor += step
  return segments
