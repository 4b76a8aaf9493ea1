"""Authoritative in-process job state with pluggable durable persistence."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from typing import Any

from transcript_engine.jobs.errors import DuplicateJobError, InvalidTransitionError, JobError, JobNotFoundError
from transcript_engine.jobs.models import CompletedArtifact, GenerationUnit, JobRecord, JobState, JobStats
from transcript_engine.storage.job_state_repo import JobStateRepository

logger = logging.getLogger(__name__)

Clock = Callable[[], int]


def _now_ms() -> int:
  return int(time.time() * 1000)


def _iso_from_ms(value_ms: int) -> str:
  return datetime.fromtimestamp(value_ms / 1000, UTC).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


def compute_stats(record: JobRecord, now_ms: int) -> JobStats:
  """Derive a progress snapshot from a job record at ``now_ms``."""
  completed_count = len(record.completed)
  pending_count = max(record.total_count - completed_count, 0)
  # Terminal jobs stop the clock at their terminal stamp.
  end_ms = record.completed_at or record.cancelled_at or now_ms
  elapsed_ms = max(end_ms - record.started_at, 0)
  if completed_count == 0 or pending_count == 0:
    estimated_remaining_ms = 0
  else:
    estimated_remaining_ms = int(round(elapsed_ms / completed_count * pending_count))
  percent_complete = int(round(completed_count / record.total_count * 100)) if record.total_count else 0
  return JobStats(
    job_id=record.job_id,
    state=record.state,
    completed_count=completed_count,
    total_count=record.total_count,
    pending_count=pending_count,
    percent_complete=percent_complete,
    elapsed_ms=elapsed_ms,
    estimated_remaining_ms=estimated_remaining_ms,
    started_at=record.started_at,
    paused_at=record.paused_at,
    cancelled_at=record.cancelled_at,
    completed_at=record.completed_at,
    error_count=record.error_count,
    cost=record.cost,
  )


class JobStateStore:
  """Own every job record; all reads and mutations go through this API.

  Mutations run under one lock and persist the job's snapshot before the
  lock is released, so the durable copy never lags a visible change.
  """

  def __init__(self, repository: JobStateRepository, *, clock: Clock = _now_ms) -> None:
    self._repository = repository
    self._clock = clock
    self._jobs: dict[str, JobRecord] = {}
    # Signals replaced by resume; calls issued before the resume may still wait on them.
    self._retired_events: dict[str, list[asyncio.Event]] = {}
    self._lock = asyncio.Lock()

  def get(self, job_id: str) -> JobRecord | None:
    return self._jobs.get(job_id)

  def require(self, job_id: str) -> JobRecord:
    record = self._jobs.get(job_id)
    if record is None:
      raise JobNotFoundError(job_id)
    return record

  def state_of(self, job_id: str) -> JobState:
    return self.require(job_id).state

  async def create(self, job_id: str, total_count: int, units: Sequence[GenerationUnit], *, model: str | None = None) -> JobRecord:
    async with self._lock:
      # Snapshots outlive the process; an id left over from a previous run is still taken.
      if job_id in self._jobs or await self._repository.load(job_id) is not None:
        raise DuplicateJobError(job_id)
      record = JobRecord(job_id=job_id, total_count=total_count, units=list(units), state="running", started_at=self._clock(), model=model)
      self._jobs[job_id] = record
      await self._persist(record)
    logger.info("Job %s created with %d units", job_id, total_count)
    return record

  async def pause(self, job_id: str) -> JobRecord:
    async with self._lock:
      record = self.require(job_id)
      if record.state != "running":
        raise InvalidTransitionError(job_id, "pause", record.state)
      record.state = "paused"
      record.paused_at = self._clock()
      await self._persist(record)
    logger.info("Job %s paused", job_id)
    return record

  async def resume(self, job_id: str) -> JobRecord:
    async with self._lock:
      record = self.require(job_id)
      if record.state != "paused":
        raise InvalidTransitionError(job_id, "resume", record.state)
      record.state = "running"
      record.paused_at = None
      # Later cancels signal a fresh event, independent of earlier ones.
      self._retired_events.setdefault(job_id, []).append(record.cancel_event)
      record.cancel_event = asyncio.Event()
      await self._persist(record)
    logger.info("Job %s resumed", job_id)
    return record

  async def cancel(self, job_id: str) -> JobRecord:
    async with self._lock:
      record = self.require(job_id)
      if record.is_terminal:
        raise InvalidTransitionError(job_id, "cancel", record.state)
      record.state = "cancelled"
      record.cancelled_at = self._clock()
      record.cancel_event.set()
      for event in self._retired_events.pop(job_id, []):
        event.set()
      await self._persist(record)
    logger.info("Job %s cancelled", job_id)
    return record

  async def complete(self, job_id: str, *, cost: dict[str, Any] | None = None) -> JobRecord:
    async with self._lock:
      record = self.require(job_id)
      if record.is_terminal:
        raise InvalidTransitionError(job_id, "complete", record.state)
      record.state = "completed"
      record.completed_at = self._clock()
      if cost is not None:
        record.cost = cost
      await self._persist(record)
    logger.info("Job %s completed (%d/%d artifacts)", job_id, len(record.completed), record.total_count)
    return record

  async def attach_cost(self, job_id: str, cost: dict[str, Any]) -> JobRecord:
    """Store the final cost summary, e.g. on a cancelled job after it settles."""
    async with self._lock:
      record = self.require(job_id)
      record.cost = cost
      await self._persist(record)
    return record

  async def record_progress(self, job_id: str, index: int, filename: str, *, unit_index: int | None = None) -> CompletedArtifact:
    """Append one completed artifact in arrival order and advance the in-progress index.

    Cancelled jobs still accept artifacts from calls issued before the cancel;
    completed jobs accept nothing further.
    """
    async with self._lock:
      record = self.require(job_id)
      if record.state == "completed":
        raise JobError(f"Job {job_id} is completed; no further artifacts are accepted.")
      if len(record.completed) >= record.total_count:
        raise JobError(f"Job {job_id} already recorded {record.total_count} artifacts.")
      artifact = CompletedArtifact(index=index, filename=filename, completed_at=_iso_from_ms(self._clock()), unit_index=unit_index)
      record.completed.append(artifact)
      record.in_progress_index = index
      await self._persist(record)
    return artifact

  async def record_error(self, job_id: str) -> int:
    async with self._lock:
      record = self.require(job_id)
      record.error_count += 1
      await self._persist(record)
      return record.error_count

  def stats(self, job_id: str) -> JobStats:
    return compute_stats(self.require(job_id), self._clock())

  async def inspect(self, job_id: str) -> JobStats:
    """Return live stats, or stats rebuilt from the persisted snapshot after a restart."""
    record = self._jobs.get(job_id)
    if record is not None:
      return compute_stats(record, self._clock())
    snapshot = await self.load_persisted(job_id)
    if snapshot is None:
      raise JobNotFoundError(job_id)
    return compute_stats(JobRecord.from_snapshot(snapshot), self._clock())

  async def wait_until_runnable(self, job_id: str, poll_interval: float) -> JobState:
    """Block while the job is paused; return its state once it is running or terminal.

    Polls at ``poll_interval`` seconds and wakes early when the job is cancelled.
    """
    while True:
      record = self.require(job_id)
      if record.state != "paused":
        return record.state
      try:
        await asyncio.wait_for(record.cancel_event.wait(), timeout=poll_interval)
      except asyncio.TimeoutError:
        continue

  async def load_persisted(self, job_id: str) -> dict[str, Any] | None:
    return await self._repository.load(job_id)

  async def cleanup(self, job_id: str) -> None:
    """Delete persisted and in-memory state unconditionally."""
    async with self._lock:
      self._jobs.pop(job_id, None)
      self._retired_events.pop(job_id, None)
      await self._repository.delete(job_id)
    logger.info("Job %s cleaned up", job_id)

  async def _persist(self, record: JobRecord) -> None:
    await self._repository.save(record.to_snapshot())
