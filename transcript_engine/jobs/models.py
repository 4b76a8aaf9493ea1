"""Domain models for batch transcript generation jobs."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Literal

JobState = Literal["running", "paused", "cancelled", "completed"]
UnitKind = Literal["single", "series"]

TERMINAL_STATES: frozenset[str] = frozenset({"cancelled", "completed"})
SERIES_EPISODES = 4


@dataclass(frozen=True)
class GenerationUnit:
  """One planned artifact: a standalone transcript or one episode of a series."""

  index: int
  kind: UnitKind
  coach: str
  client: str
  location: str
  niche: str
  series_id: str | None = None
  episode_number: int | None = None
  total_episodes: int | None = None

  @property
  def is_series_episode(self) -> bool:
    return self.kind == "series"

  @property
  def context(self) -> str:
    """Short human-readable label used in progress events."""
    if self.is_series_episode:
      return f"Series {self.series_id}, episode {self.episode_number} of {self.total_episodes}"
    return f"{self.niche} in {self.location}"

  def as_dict(self) -> dict[str, Any]:
    return {
      "index": self.index,
      "kind": self.kind,
      "coach": self.coach,
      "client": self.client,
      "location": self.location,
      "niche": self.niche,
      "seriesId": self.series_id,
      "episodeNumber": self.episode_number,
      "totalEpisodes": self.total_episodes,
    }


@dataclass(frozen=True)
class CompletedArtifact:
  """Progress log entry for one produced artifact."""

  index: int
  filename: str
  completed_at: str
  unit_index: int | None = None

  def as_dict(self) -> dict[str, Any]:
    return {"index": self.index, "fileName": self.filename, "completedAt": self.completed_at, "unitIndex": self.unit_index}

  @classmethod
  def from_dict(cls, payload: dict[str, Any]) -> CompletedArtifact:
    unit_index = payload.get("unitIndex")
    return cls(index=int(payload["index"]), filename=str(payload["fileName"]), completed_at=str(payload["completedAt"]), unit_index=int(unit_index) if unit_index is not None else None)


@dataclass
class JobRecord:
  """Lifecycle record of one batch job, owned by the job state store."""

  job_id: str
  total_count: int
  units: list[GenerationUnit]
  state: JobState
  started_at: int
  model: str | None = None
  paused_at: int | None = None
  cancelled_at: int | None = None
  completed_at: int | None = None
  in_progress_index: int = 0
  completed: list[CompletedArtifact] = field(default_factory=list)
  error_count: int = 0
  cost: dict[str, Any] | None = None
  # Process-local signal; replaced on resume and never persisted.
  cancel_event: asyncio.Event = field(default_factory=asyncio.Event, repr=False, compare=False)

  @property
  def is_terminal(self) -> bool:
    return self.state in TERMINAL_STATES

  def to_snapshot(self) -> dict[str, Any]:
    """Serializable view persisted on every mutation."""
    return {
      "id": self.job_id,
      "state": self.state,
      "startTime": self.started_at,
      "transcriptCount": self.total_count,
      "model": self.model,
      "inProgressIndex": self.in_progress_index,
      "completedTranscripts": [artifact.as_dict() for artifact in self.completed],
      "errorCount": self.error_count,
      "pausedAt": self.paused_at,
      "cancelledAt": self.cancelled_at,
      "completedAt": self.completed_at,
      "cost": self.cost,
    }

  @classmethod
  def from_snapshot(cls, payload: dict[str, Any]) -> JobRecord:
    """Rebuild an inspection-only record; the unit plan is not persisted."""
    return cls(
      job_id=str(payload["id"]),
      total_count=int(payload["transcriptCount"]),
      units=[],
      state=payload["state"],
      started_at=int(payload["startTime"]),
      model=payload.get("model"),
      paused_at=payload.get("pausedAt"),
      cancelled_at=payload.get("cancelledAt"),
      completed_at=payload.get("completedAt"),
      in_progress_index=int(payload.get("inProgressIndex") or 0),
      completed=[CompletedArtifact.from_dict(item) for item in payload.get("completedTranscripts") or []],
      error_count=int(payload.get("errorCount") or 0),
      cost=payload.get("cost"),
    )


@dataclass(frozen=True)
class JobStats:
  """Derived progress snapshot for a job."""

  job_id: str
  state: JobState
  completed_count: int
  total_count: int
  pending_count: int
  percent_complete: int
  elapsed_ms: int
  estimated_remaining_ms: int
  started_at: int
  paused_at: int | None
  cancelled_at: int | None
  completed_at: int | None
  error_count: int
  cost: dict[str, Any] | None = None

  def as_dict(self) -> dict[str, Any]:
    return {
      "id": self.job_id,
      "state": self.state,
      "completedCount": self.completed_count,
      "totalCount": self.total_count,
      "pendingCount": self.pending_count,
      "percentComplete": self.percent_complete,
      "elapsedTime": self.elapsed_ms,
      "estimatedTimeRemaining": self.estimated_remaining_ms,
      "startTime": self.started_at,
      "pausedAt": self.paused_at,
      "cancelledAt": self.cancelled_at,
      "completedAt": self.completed_at,
      "errorCount": self.error_count,
      "cost": self.cost,
    }
