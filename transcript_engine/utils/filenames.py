"""Artifact file naming helpers."""

from __future__ import annotations

import random
import re
from datetime import date, timedelta

from transcript_engine.jobs.models import GenerationUnit

_UNSAFE_CHARS = re.compile(r"[^a-z0-9_-]", re.IGNORECASE)
_REPEATED_UNDERSCORES = re.compile(r"_+")
_COACH_LINE = re.compile(r"\*\*Coach:\*\*\s*([^\n]+)", re.IGNORECASE)
_CLIENT_LINE = re.compile(r"\*\*Client:\*\*\s*([^\n]+)", re.IGNORECASE)


def sanitize_filename(value: str) -> str:
  """Lowercase and replace anything outside ``[a-z0-9_-]`` with single underscores."""
  cleaned = _UNSAFE_CHARS.sub("_", value)
  return _REPEATED_UNDERSCORES.sub("_", cleaned).lower()


def random_recent_date(*, today: date | None = None, rng: random.Random | None = None) -> str:
  """Return an ISO date picked uniformly from the past year."""
  end = today or date.today()
  try:
    start = end.replace(year=end.year - 1)
  except ValueError:
    # 29 February has no counterpart in the previous year.
    start = end.replace(year=end.year - 1, day=28)
  span_days = (end - start).days
  offset = (rng or random).randint(0, span_days)
  return (start + timedelta(days=offset)).isoformat()


def extract_participants(text: str, *, coach: str = "coach", client: str = "client") -> tuple[str, str]:
  """Read coach and client names from ``**Coach:**`` / ``**Client:**`` lines, else use the defaults."""
  coach_match = _COACH_LINE.search(text)
  client_match = _CLIENT_LINE.search(text)
  if coach_match:
    coach = coach_match.group(1).strip()
  if client_match:
    client = client_match.group(1).strip()
  return coach, client


def build_artifact_filename(unit: GenerationUnit, text: str, position: int, *, date_str: str | None = None) -> str:
  """Name an artifact ``{coach}_{client}_{date}_{n}.md``; series episodes add ``_series{id}_ep{k}``."""
  coach, client = extract_participants(text, coach=unit.coach or "coach", client=unit.client or "client")
  stem = f"{sanitize_filename(coach)}_{sanitize_filename(client)}_{date_str or random_recent_date()}_{position}"
  if unit.is_series_episode:
    stem = f"{stem}_series{unit.series_id}_ep{unit.episode_number}"
  return f"{stem}.md"
