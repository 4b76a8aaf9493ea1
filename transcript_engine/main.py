from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from transcript_engine.api.routes import downloads, jobs, pricing
from transcript_engine.config import get_settings
from transcript_engine.core.exceptions import (
  global_exception_handler,
  http_exception_handler,
  invalid_request_exception_handler,
  invalid_transition_exception_handler,
  job_not_found_exception_handler,
  plan_mismatch_exception_handler,
  request_validation_exception_handler,
)
from transcript_engine.core.json import MsgspecJSONResponse
from transcript_engine.core.lifespan import lifespan
from transcript_engine.core.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware
from transcript_engine.jobs.errors import InvalidRequestError, InvalidTransitionError, JobNotFoundError, PlanMismatchError

settings = get_settings()

app = FastAPI(title="transcript-engine", default_response_class=MsgspecJSONResponse, lifespan=lifespan, docs_url=None, redoc_url=None, openapi_url=None)

app.add_middleware(CORSMiddleware, allow_origins=list(settings.allowed_origins), allow_credentials=False, allow_methods=["GET", "POST", "DELETE", "OPTIONS"], allow_headers=["content-type"], expose_headers=["content-length", "x-request-id"])

app.add_exception_handler(Exception, global_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
app.add_exception_handler(InvalidRequestError, invalid_request_exception_handler)
app.add_exception_handler(PlanMismatchError, plan_mismatch_exception_handler)
app.add_exception_handler(InvalidTransitionError, invalid_transition_exception_handler)
app.add_exception_handler(JobNotFoundError, job_not_found_exception_handler)

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(SecurityHeadersMiddleware)


@app.get("/health", include_in_schema=False)
async def health_check() -> dict[str, str]:
  """Return a simple health status."""
  return {"status": "ok"}


app.include_router(jobs.router, tags=["jobs"])
app.include_router(downloads.router, tags=["downloads"])
app.include_router(pricing.router, tags=["pricing"])
