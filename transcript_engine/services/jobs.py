"""Job lifecycle operations behind the HTTP routes."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path

from transcript_engine.ai.client import UpstreamClient
from transcript_engine.ai.errors import UpstreamError
from transcript_engine.ai.ledger import CostLedger
from transcript_engine.jobs.errors import DuplicateJobError, InvalidRequestError, JobError, JobNotFoundError, PlanMismatchError
from transcript_engine.jobs.events import EventStream, error_event, status_event
from transcript_engine.jobs.models import JobStats
from transcript_engine.jobs.orchestrator import BatchOrchestrator
from transcript_engine.planning.combos import ComboGenerator
from transcript_engine.planning.planner import build_plan, compute_structure
from transcript_engine.services.runtime import Runtime

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GenerationRequest:
  """Validated job submission."""

  api_key: str
  transcript_count: int
  prompt: str
  job_id: str
  model: str


@dataclass(frozen=True)
class ControlResult:
  """Outcome of a pause/resume/cancel request."""

  success: bool
  message: str
  stats: JobStats


async def _validate_request(runtime: Runtime, request: GenerationRequest) -> None:
  if not request.api_key.strip():
    raise InvalidRequestError("apiKey is required.")
  if not request.prompt.strip():
    raise InvalidRequestError("prompt is required.")
  if not request.job_id.strip():
    raise InvalidRequestError("jobId is required.")
  if request.transcript_count < 1 or request.transcript_count > runtime.settings.max_transcript_count:
    raise InvalidRequestError(f"transcriptCount must be between 1 and {runtime.settings.max_transcript_count}.")
  if runtime.store.get(request.job_id) is not None or request.job_id in runtime.reserved:
    raise DuplicateJobError(request.job_id)
  if await runtime.store.load_persisted(request.job_id) is not None:
    raise DuplicateJobError(request.job_id)


async def submit_job(runtime: Runtime, request: GenerationRequest) -> EventStream:
  """Validate the request and start the job in the background; return its event stream.

  Validation errors raise before anything is scheduled. The job task is
  owned by the runtime, so it keeps running if the stream consumer leaves.
  """
  await _validate_request(runtime, request)
  runtime.reserved.add(request.job_id)
  stream = EventStream()
  task = asyncio.create_task(_run_job(runtime, request, stream), name=f"job-{request.job_id}")
  runtime.tasks[request.job_id] = task
  task.add_done_callback(lambda _task: runtime.tasks.pop(request.job_id, None))
  return stream


async def _run_job(runtime: Runtime, request: GenerationRequest, stream: EventStream) -> None:
  job_id = request.job_id
  provider = None
  created = False
  try:
    try:
      provider = runtime.provider_factory(request.api_key)
      client = UpstreamClient(provider.get_model, runtime.pacer, runtime.policy)
      structure = compute_structure(request.transcript_count)
      stream.emit(status_event(f"Generating {structure.combo_count} coach/client combos ({structure.series_count} series, {structure.single_count} singles)..."))
      combos = ComboGenerator(client, model=runtime.settings.metadata_model, max_tokens=runtime.settings.metadata_max_tokens)
      units = await build_plan(request.transcript_count, combos)
      await runtime.store.create(job_id, request.transcript_count, units, model=request.model)
      created = True
    finally:
      runtime.reserved.discard(job_id)
    stream.emit(status_event(f"Planned {len(units)} transcripts; starting generation with {request.model}."))

    orchestrator = BatchOrchestrator(runtime.store, client, runtime.writer, config=runtime.orchestrator_config)
    await orchestrator.run(job_id, template=request.prompt, model=request.model, ledger=CostLedger(), emit=stream.emit)

  except (PlanMismatchError, UpstreamError, JobError) as exc:
    logger.error("Job %s aborted: %s", job_id, exc)
    await _abort_job(runtime, job_id, str(exc), stream, created=created)

  except asyncio.CancelledError:
    logger.warning("Job %s task cancelled", job_id)
    raise

  except Exception as exc:
    logger.exception("Job %s failed unexpectedly", job_id)
    await _abort_job(runtime, job_id, f"Generation failed: {type(exc).__name__}: {exc}", stream, created=created)

  finally:
    stream.close()
    close = getattr(provider, "aclose", None)
    if close is not None:
      await close()


async def _abort_job(runtime: Runtime, job_id: str, message: str, stream: EventStream, *, created: bool) -> None:
  """Stop a job after a job-level failure and drop its partial artifacts."""
  # A run that never created its record must not touch state owned by another job with the same id.
  if created:
    record = runtime.store.get(job_id)
    if record is not None and not record.is_terminal:
      await runtime.store.cancel(job_id)
    await runtime.writer.discard(job_id)
  stream.emit(error_event(message, fatal=True))


async def pause_job(runtime: Runtime, job_id: str) -> ControlResult:
  await runtime.store.pause(job_id)
  return ControlResult(success=True, message="Job paused", stats=runtime.store.stats(job_id))


async def resume_job(runtime: Runtime, job_id: str) -> ControlResult:
  await runtime.store.resume(job_id)
  return ControlResult(success=True, message="Job resumed", stats=runtime.store.stats(job_id))


async def cancel_job(runtime: Runtime, job_id: str) -> ControlResult:
  await runtime.store.cancel(job_id)
  return ControlResult(success=True, message="Job cancelled", stats=runtime.store.stats(job_id))


async def get_job_status(runtime: Runtime, job_id: str) -> JobStats:
  """Return live stats, falling back to persisted state for jobs from an earlier process."""
  return await runtime.store.inspect(job_id)


async def package_partial(runtime: Runtime, job_id: str) -> Path:
  """Zip whatever the job has produced so far."""
  if runtime.store.get(job_id) is None and await runtime.store.load_persisted(job_id) is None:
    raise JobNotFoundError(job_id)
  archive = await runtime.writer.package(job_id)
  if archive is None:
    raise JobNotFoundError(job_id)
  return archive


async def delete_job(runtime: Runtime, job_id: str) -> None:
  """Cancel the job if it is still active, then remove its state and artifacts."""
  record = runtime.store.get(job_id)
  if record is None and await runtime.store.load_persisted(job_id) is None:
    raise JobNotFoundError(job_id)
  if record is not None and not record.is_terminal:
    await runtime.store.cancel(job_id)
  task = runtime.tasks.get(job_id)
  if task is not None and not task.done():
    task.cancel()
    await asyncio.gather(task, return_exceptions=True)
  await runtime.store.cleanup(job_id)
  await runtime.writer.discard(job_id)
