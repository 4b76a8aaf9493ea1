from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import FileResponse

from transcript_engine.api.deps import get_runtime
from transcript_engine.services import jobs as job_service
from transcript_engine.services.runtime import Runtime

router = APIRouter()


@router.get("/download-partial/{job_id}")
async def download_partial(job_id: str, runtime: Runtime = Depends(get_runtime)) -> FileResponse:  # noqa: B008
  """Package and return every artifact the job has produced so far."""
  archive = await job_service.package_partial(runtime, job_id)
  return FileResponse(archive, media_type="application/zip", filename=archive.name)


@router.get("/download/{filename}")
async def download_archive(filename: str, runtime: Runtime = Depends(get_runtime)) -> FileResponse:  # noqa: B008
  path = runtime.writer.resolve_download(filename)
  if path is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")
  return FileResponse(path, media_type="application/zip", filename=path.name)
