"""Drive a job's unit plan through the upstream client under a bounded worker pool."""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from transcript_engine.ai.client import UpstreamClient
from transcript_engine.ai.errors import UpstreamAbortedError, UpstreamError
from transcript_engine.ai.ledger import CostLedger
from transcript_engine.ai.providers.capabilities import OutputCeilings, get_output_ceilings
from transcript_engine.jobs.events import EventSink, complete_event, error_event, progress_event, status_event
from transcript_engine.jobs.models import GenerationUnit, JobStats
from transcript_engine.jobs.prompts import build_series_prompt, build_single_prompt
from transcript_engine.jobs.splitting import split_series_episodes
from transcript_engine.jobs.store import JobStateStore
from transcript_engine.services.artifacts import ArtifactWriter
from transcript_engine.utils.filenames import build_artifact_filename, random_recent_date

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrchestratorConfig:
  """Pool width, pause polling and cancellation mode for one orchestrator."""

  concurrency: int = 5
  pause_poll_interval: float = 0.5
  hard_cancel: bool = False


@dataclass(frozen=True)
class WorkItem:
  """One upstream call: a single unit, or all four episodes of a series."""

  units: tuple[GenerationUnit, ...]

  @property
  def is_series(self) -> bool:
    return self.units[0].is_series_episode

  @property
  def series_id(self) -> str | None:
    return self.units[0].series_id

  @property
  def first_index(self) -> int:
    return self.units[0].index

  def describe(self) -> str:
    if self.is_series:
      return f"series {self.series_id}"
    return f"unit {self.first_index}"


def group_work_items(units: Sequence[GenerationUnit]) -> list[WorkItem]:
  """Bundle consecutive episodes of each series into one item; singles stand alone."""
  items: list[WorkItem] = []
  series_items: dict[str, list[GenerationUnit]] = {}
  order: list[str | int] = []
  for unit in units:
    if unit.is_series_episode and unit.series_id is not None:
      if unit.series_id not in series_items:
        series_items[unit.series_id] = []
        order.append(unit.series_id)
      series_items[unit.series_id].append(unit)
    else:
      order.append(unit.index)

  by_index = {unit.index: unit for unit in units}
  for key in order:
    if isinstance(key, str):
      episodes = sorted(series_items[key], key=lambda unit: unit.episode_number or 0)
      items.append(WorkItem(units=tuple(episodes)))
    else:
      items.append(WorkItem(units=(by_index[key],)))
  return items


class BatchOrchestrator:
  """Run every work item of a job, reporting artifacts, failures and cost as they happen."""

  def __init__(
    self,
    store: JobStateStore,
    client: UpstreamClient,
    writer: ArtifactWriter,
    *,
    config: OrchestratorConfig | None = None,
    ceilings: Callable[[str], OutputCeilings] = get_output_ceilings,
    date_factory: Callable[[], str] = random_recent_date,
  ) -> None:
    self._store = store
    self._client = client
    self._writer = writer
    self._config = config or OrchestratorConfig()
    self._ceilings = ceilings
    self._date_factory = date_factory

  async def run(self, job_id: str, *, template: str, model: str, ledger: CostLedger, emit: EventSink) -> JobStats:
    """Process the whole plan, settle the job and emit the final ``complete`` event."""
    record = self._store.require(job_id)
    items = group_work_items(record.units)
    semaphore = asyncio.Semaphore(self._config.concurrency)
    # Progress indexes follow completion order; next() never yields to the loop.
    positions = itertools.count(1)
    run = _JobRun(job_id=job_id, template=template, model=model, total=record.total_count, ledger=ledger, emit=emit, positions=positions)

    emit(status_event(f"Generating {record.total_count} transcripts in {len(items)} work items..."))
    logger.info("Job %s starting: %d work items, concurrency=%d", job_id, len(items), self._config.concurrency)

    async def _bounded(item: WorkItem) -> None:
      async with semaphore:
        await self._process_item(run, item)

    await asyncio.gather(*(_bounded(item) for item in items))
    return await self._settle(run)

  async def _process_item(self, run: _JobRun, item: WorkItem) -> None:
    state = await self._store.wait_until_runnable(run.job_id, self._config.pause_poll_interval)
    if state != "running":
      logger.debug("Job %s is %s; skipping %s", run.job_id, state, item.describe())
      return

    ceilings = self._ceilings(run.model)
    if item.is_series:
      prompt = build_series_prompt(run.template, item.units, total=run.total)
      max_tokens = ceilings.series
    else:
      prompt = build_single_prompt(run.template, item.units[0], position=item.first_index + 1, total=run.total)
      max_tokens = ceilings.single

    cancel_event = self._store.require(run.job_id).cancel_event
    try:
      result = await self._client.invoke(prompt, run.model, max_tokens, cancel_event=cancel_event, abort_in_flight=self._config.hard_cancel)
    except UpstreamAbortedError:
      logger.info("Job %s: %s stopped by cancellation", run.job_id, item.describe())
      return
    except UpstreamError as exc:
      await self._fail_item(run, item, f"Failed to generate {item.describe()}: {exc.message}")
      return

    try:
      run.ledger.record(input_tokens=result.input_tokens, output_tokens=result.output_tokens, model=run.model, unit_kind="series" if item.is_series else "single")
      if item.is_series:
        split = split_series_episodes(result.text, len(item.units))
        if split.used_fallback:
          run.emit(status_event(f"Series {item.series_id}: episode markers missing, split by line count."))
        texts = split.segments
      else:
        texts = [result.text]

      for unit, text in zip(item.units, texts, strict=True):
        await self._record_artifact(run, unit, text)
    except Exception as exc:  # noqa: BLE001
      logger.exception("Job %s: storing output of %s failed", run.job_id, item.describe())
      await self._fail_item(run, item, f"Failed to store {item.describe()}: {exc}")

  async def _record_artifact(self, run: _JobRun, unit: GenerationUnit, text: str) -> None:
    position = next(run.positions)
    filename = build_artifact_filename(unit, text, position, date_str=self._date_factory())
    await self._writer.write(run.job_id, filename, text)
    await self._store.record_progress(run.job_id, position, filename, unit_index=unit.index)
    run.emit(progress_event(current=position, total=run.total, filename=filename, context=unit.context, usage=run.ledger.summary()))

  async def _fail_item(self, run: _JobRun, item: WorkItem, message: str) -> None:
    logger.error("Job %s: %s", run.job_id, message)
    await self._store.record_error(run.job_id)
    run.emit(error_event(message, unit_index=item.first_index, series_id=item.series_id))

  async def _settle(self, run: _JobRun) -> JobStats:
    cost = run.ledger.summary()
    record = self._store.require(run.job_id)
    if record.state == "cancelled":
      await self._store.attach_cost(run.job_id, cost)
      run.emit(status_event("Job cancelled; packaging completed transcripts."))
    else:
      await self._store.complete(run.job_id, cost=cost)

    archive = await self._writer.package(run.job_id)
    download_url = f"/download/{archive.name}" if archive is not None else None
    stats = self._store.stats(run.job_id)
    logger.info("Job %s settled as %s: %d/%d artifacts, %d errors, cost %s", run.job_id, stats.state, stats.completed_count, stats.total_count, stats.error_count, cost["formattedCost"])
    run.emit(complete_event(download_url=download_url, stats=stats.as_dict(), cost=cost))
    return stats


@dataclass
class _JobRun:
  job_id: str
  template: str
  model: str
  total: int
  ledger: CostLedger
  emit: EventSink
  positions: itertools.count
