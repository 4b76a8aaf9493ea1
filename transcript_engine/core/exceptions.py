import logging
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError

from transcript_engine.core.json import MsgspecJSONResponse
from transcript_engine.jobs.errors import InvalidRequestError, InvalidTransitionError, JobNotFoundError, PlanMismatchError

logger = logging.getLogger("uvicorn.error")


def _coerce_json_safe(value: Any) -> Any:
  """Convert unsupported values into JSON-safe primitives for error responses."""
  if value is None or isinstance(value, bool | int | float | str):
    return value
  if isinstance(value, dict):
    return {str(key): _coerce_json_safe(item) for key, item in value.items()}
  if isinstance(value, list | tuple | set):
    return [_coerce_json_safe(item) for item in value]
  # Exceptions inside validation contexts are rendered as "Type: message".
  if isinstance(value, BaseException):
    error_message = str(value)
    if error_message:
      return f"{type(value).__name__}: {error_message}"
    return type(value).__name__
  return str(value)


def _error_payload(detail: Any, *, request_id: str | None = None) -> dict[str, Any]:
  payload: dict[str, Any] = {"detail": detail}
  # The request id lets clients quote a line of the server log.
  if request_id:
    payload["requestId"] = request_id
  return payload


def _sanitize_validation_errors(errors: Any) -> list[dict[str, Any]]:
  """Return validation errors without raw input payloads (which may carry the API key)."""
  sanitized: list[dict[str, Any]] = []
  for error in errors:
    scrubbed = {key: value for key, value in error.items() if key != "input"}
    if "ctx" in scrubbed and isinstance(scrubbed["ctx"], dict):
      scrubbed_ctx = dict(scrubbed["ctx"])
      scrubbed_ctx.pop("input", None)
      scrubbed["ctx"] = scrubbed_ctx

    sanitized.append(_coerce_json_safe(scrubbed))

  return sanitized


def _request_id(request: Request) -> str | None:
  return getattr(request.state, "request_id", None)


async def global_exception_handler(request: Request, exc: Exception) -> MsgspecJSONResponse:
  """Catch unhandled errors without leaking details to callers."""
  request_id = _request_id(request)
  logger.error("Global exception request_id=%s path=%s error_type=%s", request_id, request.url.path, type(exc).__name__, exc_info=True)
  return MsgspecJSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=_error_payload("Internal Server Error", request_id=request_id))


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> MsgspecJSONResponse:
  """Reject malformed submissions with 400 before any work starts."""
  request_id = _request_id(request)
  sanitized_errors = _sanitize_validation_errors(exc.errors())
  logger.warning("Request validation failed request_id=%s path=%s method=%s errors=%s", request_id, request.url.path, request.method, sanitized_errors)
  return MsgspecJSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=_error_payload(sanitized_errors, request_id=request_id))


async def http_exception_handler(request: Request, exc: HTTPException) -> MsgspecJSONResponse:
  """Handle HTTPExceptions while hiding 5xx diagnostics."""
  from transcript_engine.config import get_settings

  settings = get_settings()
  request_id = _request_id(request)
  if exc.status_code >= 500:
    logger.error("HTTPException request_id=%s path=%s status_code=%s detail=%s", request_id, request.url.path, exc.status_code, exc.detail, exc_info=True)
    return MsgspecJSONResponse(status_code=exc.status_code, content=_error_payload("Internal Server Error", request_id=request_id))

  if settings.log_http_4xx:
    logger.warning("HTTPException request_id=%s path=%s status_code=%s detail=%s", request_id, request.url.path, exc.status_code, exc.detail)

  return MsgspecJSONResponse(status_code=exc.status_code, content=_error_payload(exc.detail, request_id=request_id))


async def invalid_request_exception_handler(request: Request, exc: InvalidRequestError) -> MsgspecJSONResponse:
  request_id = _request_id(request)
  logger.warning("Invalid request request_id=%s path=%s detail=%s", request_id, request.url.path, exc)
  return MsgspecJSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=_error_payload(str(exc), request_id=request_id))


async def plan_mismatch_exception_handler(request: Request, exc: PlanMismatchError) -> MsgspecJSONResponse:
  request_id = _request_id(request)
  logger.error("Plan mismatch request_id=%s path=%s detail=%s", request_id, request.url.path, exc)
  return MsgspecJSONResponse(status_code=status.HTTP_502_BAD_GATEWAY, content=_error_payload(str(exc), request_id=request_id))


async def invalid_transition_exception_handler(request: Request, exc: InvalidTransitionError) -> MsgspecJSONResponse:
  request_id = _request_id(request)
  logger.info("Rejected %s for job %s in state %s request_id=%s", exc.action, exc.job_id, exc.state, request_id)
  return MsgspecJSONResponse(status_code=status.HTTP_409_CONFLICT, content={"success": False, **_error_payload(str(exc), request_id=request_id)})


async def job_not_found_exception_handler(request: Request, exc: JobNotFoundError) -> MsgspecJSONResponse:
  request_id = _request_id(request)
  return MsgspecJSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"success": False, **_error_payload(str(exc), request_id=request_id)})
