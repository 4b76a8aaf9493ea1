from __future__ import annotations

import asyncio

import pytest

from transcript_engine.jobs.errors import DuplicateJobError, InvalidTransitionError, JobError, JobNotFoundError
from transcript_engine.jobs.store import JobStateStore
from transcript_engine.storage.job_state_repo import FileJobStateRepository, InMemoryJobStateRepository


class FakeClock:
  def __init__(self, now: int = 1_000_000) -> None:
    self.now = now

  def __call__(self) -> int:
    return self.now


@pytest.fixture
def clock() -> FakeClock:
  return FakeClock()


@pytest.fixture
def repository() -> InMemoryJobStateRepository:
  return InMemoryJobStateRepository()


@pytest.fixture
def store(repository, clock) -> JobStateStore:
  return JobStateStore(repository, clock=clock)


@pytest.mark.anyio
async def test_create_starts_running_and_persists(store, repository, single_units) -> None:
  record = await store.create("job-1", 3, single_units(3), model="claude-sonnet-4-5-20250929")

  assert record.state == "running"
  assert repository.snapshots["job-1"]["state"] == "running"
  assert repository.snapshots["job-1"]["transcriptCount"] == 3
  assert repository.snapshots["job-1"]["model"] == "claude-sonnet-4-5-20250929"


@pytest.mark.anyio
async def test_duplicate_ids_are_rejected(store, single_units) -> None:
  await store.create("job-1", 1, single_units(1))

  with pytest.raises(DuplicateJobError):
    await store.create("job-1", 1, single_units(1))


@pytest.mark.anyio
async def test_pause_resume_cancel_transitions(store, repository, clock, single_units) -> None:
  await store.create("job-1", 2, single_units(2))

  clock.now += 10
  await store.pause("job-1")
  assert repository.snapshots["job-1"]["pausedAt"] == clock.now

  await store.resume("job-1")
  assert store.state_of("job-1") == "running"
  assert repository.snapshots["job-1"]["pausedAt"] is None

  await store.pause("job-1")
  record = await store.cancel("job-1")
  assert record.state == "cancelled"
  assert record.cancel_event.is_set()
  assert repository.snapshots["job-1"]["cancelledAt"] == clock.now


@pytest.mark.anyio
@pytest.mark.parametrize(
  ("setup", "action", "message"),
  [
    ([], "resume", "Cannot resume job in state: running"),
    (["pause"], "pause", "Cannot pause job in state: paused"),
    (["cancel"], "pause", "Cannot pause job in state: cancelled"),
    (["cancel"], "resume", "Cannot resume job in state: cancelled"),
    (["cancel"], "cancel", "Cannot cancel job in state: cancelled"),
  ],
)
async def test_invalid_transitions_leave_state_unchanged(store, single_units, setup, action, message) -> None:
  await store.create("job-1", 1, single_units(1))
  for step in setup:
    await getattr(store, step)("job-1")
  before = store.state_of("job-1")

  with pytest.raises(InvalidTransitionError, match=message):
    await getattr(store, action)("job-1")

  assert store.state_of("job-1") == before


@pytest.mark.anyio
async def test_unknown_jobs_raise_not_found(store) -> None:
  with pytest.raises(JobNotFoundError):
    await store.pause("missing")
  with pytest.raises(JobNotFoundError):
    await store.inspect("missing")


@pytest.mark.anyio
async def test_progress_is_recorded_in_arrival_order(store, repository, single_units) -> None:
  await store.create("job-1", 3, single_units(3))

  await store.record_progress("job-1", 1, "b.md", unit_index=2)
  await store.record_progress("job-1", 2, "a.md", unit_index=0)

  record = store.require("job-1")
  assert [artifact.filename for artifact in record.completed] == ["b.md", "a.md"]
  assert record.in_progress_index == 2
  assert [item["unitIndex"] for item in repository.snapshots["job-1"]["completedTranscripts"]] == [2, 0]


@pytest.mark.anyio
async def test_progress_never_exceeds_the_total(store, single_units) -> None:
  await store.create("job-1", 1, single_units(1))
  await store.record_progress("job-1", 1, "a.md")

  with pytest.raises(JobError):
    await store.record_progress("job-1", 2, "b.md")


@pytest.mark.anyio
async def test_cancelled_jobs_still_accept_in_flight_artifacts(store, single_units) -> None:
  await store.create("job-1", 2, single_units(2))
  await store.cancel("job-1")

  await store.record_progress("job-1", 1, "a.md")

  assert store.stats("job-1").completed_count == 1


@pytest.mark.anyio
async def test_completed_jobs_accept_nothing(store, single_units) -> None:
  await store.create("job-1", 2, single_units(2))
  await store.complete("job-1", cost={"totalCost": 0})

  with pytest.raises(JobError):
    await store.record_progress("job-1", 1, "a.md")
  with pytest.raises(InvalidTransitionError):
    await store.cancel("job-1")


@pytest.mark.anyio
async def test_stats_estimate_remaining_time(store, clock, single_units) -> None:
  await store.create("job-1", 4, single_units(4))
  assert store.stats("job-1").estimated_remaining_ms == 0

  clock.now += 2000
  await store.record_progress("job-1", 1, "a.md")
  stats = store.stats("job-1")

  assert stats.elapsed_ms == 2000
  assert stats.pending_count == 3
  assert stats.percent_complete == 25
  assert stats.estimated_remaining_ms == 6000


@pytest.mark.anyio
async def test_terminal_jobs_stop_the_clock(store, clock, single_units) -> None:
  await store.create("job-1", 1, single_units(1))
  clock.now += 500
  await store.record_progress("job-1", 1, "a.md")
  await store.complete("job-1", cost={"totalCost": 0.5})
  clock.now += 10_000

  stats = store.stats("job-1")
  assert stats.elapsed_ms == 500
  assert stats.estimated_remaining_ms == 0
  assert stats.cost == {"totalCost": 0.5}


@pytest.mark.anyio
async def test_errors_are_counted(store, repository, single_units) -> None:
  await store.create("job-1", 2, single_units(2))

  assert await store.record_error("job-1") == 1
  assert await store.record_error("job-1") == 2
  assert repository.snapshots["job-1"]["errorCount"] == 2


@pytest.mark.anyio
async def test_resume_installs_a_fresh_cancel_signal(store, single_units) -> None:
  await store.create("job-1", 1, single_units(1))
  first = store.require("job-1").cancel_event
  await store.pause("job-1")
  await store.resume("job-1")
  second = store.require("job-1").cancel_event

  assert first is not second
  await store.cancel("job-1")
  # Calls issued before the resume hold the older signal.
  assert first.is_set()
  assert second.is_set()


@pytest.mark.anyio
async def test_wait_returns_immediately_when_running(store, single_units) -> None:
  await store.create("job-1", 1, single_units(1))

  assert await store.wait_until_runnable("job-1", 0.01) == "running"


@pytest.mark.anyio
async def test_wait_blocks_until_resumed(store, single_units) -> None:
  await store.create("job-1", 1, single_units(1))
  await store.pause("job-1")

  waiter = asyncio.create_task(store.wait_until_runnable("job-1", 0.01))
  await asyncio.sleep(0.03)
  assert not waiter.done()

  await store.resume("job-1")
  assert await asyncio.wait_for(waiter, 1) == "running"


@pytest.mark.anyio
async def test_wait_wakes_on_cancel(store, single_units) -> None:
  await store.create("job-1", 1, single_units(1))
  await store.pause("job-1")

  waiter = asyncio.create_task(store.wait_until_runnable("job-1", 60))
  await asyncio.sleep(0)
  await store.cancel("job-1")

  assert await asyncio.wait_for(waiter, 1) == "cancelled"


@pytest.mark.anyio
async def test_inspect_falls_back_to_the_persisted_snapshot(repository, clock, single_units) -> None:
  first = JobStateStore(repository, clock=clock)
  await first.create("job-1", 2, single_units(2))
  await first.record_progress("job-1", 1, "a.md")
  await first.complete("job-1")

  # A fresh process sees only what was persisted.
  second = JobStateStore(repository, clock=clock)
  stats = await second.inspect("job-1")

  assert second.get("job-1") is None
  assert stats.state == "completed"
  assert stats.completed_count == 1
  assert stats.total_count == 2


@pytest.mark.anyio
async def test_cleanup_removes_memory_and_persisted_state(store, repository, single_units) -> None:
  await store.create("job-1", 1, single_units(1))

  await store.cleanup("job-1")

  assert store.get("job-1") is None
  assert "job-1" not in repository.snapshots
  await store.cleanup("job-1")


@pytest.mark.anyio
async def test_ids_persisted_by_an_earlier_process_are_rejected(tmp_path, clock, single_units) -> None:
  first = JobStateStore(FileJobStateRepository(tmp_path), clock=clock)
  await first.create("job-1", 2, single_units(2))
  await first.cancel("job-1")

  second = JobStateStore(FileJobStateRepository(tmp_path), clock=clock)
  with pytest.raises(DuplicateJobError):
    await second.create("job-1", 5, single_units(5))

  assert second.get("job-1") is None
  stats = await second.inspect("job-1")
  assert stats.state == "cancelled"
  assert stats.total_count == 2


@pytest.mark.anyio
async def test_unsafe_ids_are_not_found_with_file_storage(tmp_path, clock) -> None:
  store = JobStateStore(FileJobStateRepository(tmp_path), clock=clock)

  with pytest.raises(JobNotFoundError):
    await store.inspect("my job")
  assert await store.load_persisted("../escape") is None
