import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from transcript_engine.core.database import dispose_engine, get_db_engine, init_models
from transcript_engine.core.logging import _initialize_logging
from transcript_engine.services.artifacts import ArtifactWriter
from transcript_engine.services.runtime import build_runtime


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Set up logging, storage and the job runtime; stop running jobs on shutdown."""
  from transcript_engine.config import get_settings

  settings = get_settings()
  logger = logging.getLogger("transcript_engine.core.lifespan")

  try:
    _initialize_logging(settings)
    logger.info("Startup complete - logging verified.")
  except RuntimeError:
    # Keep serving with whatever handlers uvicorn installed.
    logger.warning("Logging setup failed; continuing with default handlers.", exc_info=True)

  settings.output_dir.mkdir(parents=True, exist_ok=True)
  # Archives and job folders from earlier runs are only kept for a short while.
  ArtifactWriter(settings.output_dir).cleanup_stale(settings.temp_max_age_hours)

  if settings.state_backend == "sql":
    engine = get_db_engine()
    if engine is None:
      raise RuntimeError("TRANSCRIPTS_DATABASE_URL is not configured for the sql state backend.")
    await init_models(engine)
    logger.info("SQL job-state backend ready.")

  runtime = build_runtime(settings)
  app.state.runtime = runtime
  logger.info("Job runtime ready: backend=%s concurrency=%d retries=%d spacing=%dms", settings.state_backend, settings.concurrency, settings.max_retries, settings.rate_limit_spacing_ms)

  try:
    yield
  finally:
    await runtime.shutdown()
    if settings.state_backend == "sql":
      await dispose_engine()
