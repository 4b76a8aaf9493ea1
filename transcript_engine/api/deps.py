from fastapi import Request

from transcript_engine.services.runtime import Runtime


def get_runtime(request: Request) -> Runtime:
  """Return the job runtime installed by the lifespan."""
  return request.app.state.runtime
