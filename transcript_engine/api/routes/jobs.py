import logging
from collections.abc import AsyncIterator

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from transcript_engine.api.deps import get_runtime
from transcript_engine.api.models import GenerateTranscriptsRequest, JobControlResponse, JobStatsResponse
from transcript_engine.config import Settings, get_settings
from transcript_engine.jobs.events import EventStream
from transcript_engine.jobs.models import JobStats
from transcript_engine.services import jobs as job_service
from transcript_engine.services.runtime import Runtime

router = APIRouter()
logger = logging.getLogger("transcript_engine.api.routes.jobs")

_SSE_HEADERS = {"Cache-Control": "no-cache", "Connection": "keep-alive", "X-Accel-Buffering": "no"}


def _stats_response(stats: JobStats) -> JobStatsResponse:
  return JobStatsResponse.model_validate(stats.as_dict())


def _control_response(result: job_service.ControlResult) -> JobControlResponse:
  return JobControlResponse(success=result.success, message=result.message, stats=_stats_response(result.stats))


async def _sse_body(stream: EventStream) -> AsyncIterator[bytes]:
  async for event in stream:
    yield event.as_sse()


@router.post("/generate")
async def generate_transcripts(  # noqa: B008
  payload: GenerateTranscriptsRequest,
  settings: Settings = Depends(get_settings),  # noqa: B008
  runtime: Runtime = Depends(get_runtime),  # noqa: B008
) -> StreamingResponse:
  """Start a generation job and stream its progress as server-sent events."""
  request = job_service.GenerationRequest(api_key=payload.api_key, transcript_count=payload.transcript_count, prompt=payload.prompt, job_id=payload.job_id, model=payload.model or settings.default_model)
  # Validation errors raise here, before the stream starts.
  stream = await job_service.submit_job(runtime, request)
  logger.info("Job %s accepted: %d transcripts with %s", request.job_id, request.transcript_count, request.model)
  return StreamingResponse(_sse_body(stream), media_type="text/event-stream", headers=_SSE_HEADERS)


@router.post("/pause/{job_id}", response_model=JobControlResponse)
async def pause_job(job_id: str, runtime: Runtime = Depends(get_runtime)) -> JobControlResponse:  # noqa: B008
  """Pause a running job; in-flight calls finish, queued work waits."""
  return _control_response(await job_service.pause_job(runtime, job_id))


@router.post("/resume/{job_id}", response_model=JobControlResponse)
async def resume_job(job_id: str, runtime: Runtime = Depends(get_runtime)) -> JobControlResponse:  # noqa: B008
  return _control_response(await job_service.resume_job(runtime, job_id))


@router.post("/cancel/{job_id}", response_model=JobControlResponse)
async def cancel_job(job_id: str, runtime: Runtime = Depends(get_runtime)) -> JobControlResponse:  # noqa: B008
  """Cancel a job; artifacts produced so far stay downloadable."""
  return _control_response(await job_service.cancel_job(runtime, job_id))


@router.get("/status/{job_id}", response_model=JobStatsResponse)
async def get_job_status(job_id: str, runtime: Runtime = Depends(get_runtime)) -> JobStatsResponse:  # noqa: B008
  return _stats_response(await job_service.get_job_status(runtime, job_id))


@router.delete("/jobs/{job_id}")
async def delete_job(job_id: str, runtime: Runtime = Depends(get_runtime)) -> dict[str, object]:  # noqa: B008
  """Remove a job's persisted state and artifacts."""
  await job_service.delete_job(runtime, job_id)
  return {"success": True, "message": f"Job {job_id} deleted"}
