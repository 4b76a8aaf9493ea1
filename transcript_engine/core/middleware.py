import json
import logging
import time
import uuid
from typing import Any

from starlette.datastructures import MutableHeaders
from starlette.types import ASGIApp, Receive, Scope, Send

from transcript_engine.config import get_settings

logger = logging.getLogger("transcript_engine.core.middleware")

# Submissions carry the caller's upstream API key as ``apiKey``.
_SENSITIVE_KEYS = {"password", "token", "key", "apikey", "api_key", "authorization", "cookie", "secret", "x-api-key"}


def _redact_sensitive_keys(data: Any) -> Any:
  """Redact sensitive keys from a dictionary or list recursively."""
  if isinstance(data, dict):
    return {k: ("***" if k.lower() in _SENSITIVE_KEYS else _redact_sensitive_keys(v)) for k, v in data.items()}
  if isinstance(data, list):
    return [_redact_sensitive_keys(item) for item in data]
  return data


def _normalize_headers(scope: Scope) -> dict[str, str]:
  """Normalize scope headers so downstream logging can check content type safely."""
  # Convert byte headers into a case-insensitive mapping for logging decisions.
  return {key.decode("latin-1").lower(): value.decode("latin-1") for key, value in scope.get("headers", [])}


def _build_request_url(scope: Scope) -> str:
  """Build a readable URL path for logging without relying on Request bodies."""
  # Construct a path with query string to mirror incoming request targets.
  path = scope.get("path", "")
  query_string = scope.get("query_string", b"")
  if query_string:
    return f"{path}?{query_string.decode('latin-1')}"

  return path


def _is_textual_content_type(content_type: str | None) -> bool:
  """Decide whether a body is safe to log as text."""
  if not content_type:
    return False

  normalized = content_type.lower()
  # Event streams never end for long jobs; they are not buffered for logging.
  if normalized.startswith("text/event-stream"):
    return False

  # Allow JSON and text types while excluding binary payloads such as ZIP downloads.
  if "application/json" in normalized or normalized.endswith("+json"):
    return True

  return normalized.startswith("text/")


def _decode_body_text(body: bytes) -> str:
  """Decode bytes into text for logging with safe fallbacks."""
  # Prefer UTF-8 for JSON/text payloads and fall back safely.
  try:
    return body.decode("utf-8")
  except UnicodeDecodeError:
    return body.decode("latin-1", errors="replace")


def _format_body_for_log(body: bytes, content_type: str | None, max_bytes: int) -> str:
  """Format a request/response body for logging with redaction."""
  # Represent empty payloads explicitly to avoid ambiguous logs.
  if not body:
    return "<empty>"

  # Skip binary payloads to avoid dumping raw bytes into logs.
  if not _is_textual_content_type(content_type):
    return f"<non-text body {len(body)} bytes>"

  # Truncated JSON is not parsed, so it cannot be redacted; it is withheld instead.
  if len(body) > max_bytes:
    if content_type and "json" in content_type.lower():
      return f"<json body {len(body)} bytes withheld>"
    return f"{_decode_body_text(body[:max_bytes])}...(truncated)"

  text = _decode_body_text(body)
  if content_type and "json" in content_type.lower():
    try:
      parsed = json.loads(text)
    except json.JSONDecodeError:
      return "<unparseable json body withheld>"

    return json.dumps(_redact_sensitive_keys(parsed), ensure_ascii=True)

  return text


class RequestLoggingMiddleware:
  """Log request/response details while preserving body streams for downstream handlers."""

  def __init__(self, app: ASGIApp) -> None:
    """Store the downstream ASGI application for request logging."""
    self.app = app

  async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
    """Record request/response metadata; bodies only when explicitly enabled."""
    # Skip non-HTTP scopes to avoid interfering with lifespan events.
    if scope["type"] != "http":
      await self.app(scope, receive, send)
      return

    # Resolve logging settings once; the cache keeps this cheap per request.
    settings = get_settings()
    log_http_bodies = settings.log_http_bodies
    log_http_body_bytes = settings.log_http_body_bytes

    # Generate a request id and store it for downstream handlers and exception logging.
    request_id = str(uuid.uuid4())
    scope.setdefault("state", {})["request_id"] = request_id

    # Start timing early so latency includes downstream handlers.
    start_time = time.time()
    # Log the incoming request metadata for traceability.
    method = scope.get("method", "UNKNOWN")
    logger.info("Incoming request request_id=%s %s %s", request_id, method, _build_request_url(scope))
    # Log safe request metadata hints without touching the body.
    headers = _normalize_headers(scope)
    content_type = headers.get("content-type")
    content_length = headers.get("content-length")
    if content_type or content_length:
      logger.debug("Request metadata request_id=%s content-type=%s content-length=%s", request_id, content_type, content_length)

    # Buffer request bodies only when explicitly enabled.
    receive_wrapper = receive
    if log_http_bodies:
      # Drain the incoming body so we can log it and replay it for downstream handlers.
      body_chunks: list[bytes] = []
      more_body = True
      while more_body:
        message = await receive()
        if message.get("type") != "http.request":
          break
        chunk = message.get("body", b"")
        if chunk:
          body_chunks.append(chunk)
        more_body = message.get("more_body", False)

      request_body = b"".join(body_chunks)
      # Replay the drained body once, then hand disconnects through to the handler.
      body_sent = False

      async def receive_wrapper() -> dict[str, Any]:
        nonlocal body_sent
        if body_sent:
          return await receive()
        body_sent = True
        return {"type": "http.request", "body": request_body, "more_body": False}

      if request_body:
        logger.info("Request body request_id=%s body=%s", request_id, _format_body_for_log(request_body, content_type, log_http_body_bytes))

    # Capture response status for response timing logs.
    status_code: int | None = None

    async def send_wrapper(message: dict[str, Any]) -> None:
      # Track the response status from the response start message.
      nonlocal status_code
      if message.get("type") == "http.response.start":
        status_code = message.get("status")
        # Attach a request id to responses to correlate clients with server logs.
        response_headers = MutableHeaders(scope=message)
        if "x-request-id" not in response_headers:
          response_headers["x-request-id"] = request_id

      # Body chunks pass straight through so progress events reach the client as they are emitted.
      await send(message)

    # Execute downstream handlers to keep middleware focused on observation.
    await self.app(scope, receive_wrapper, send_wrapper)

    # Emit response timing for operational visibility; for SSE this spans the whole job.
    process_time = (time.time() - start_time) * 1000
    logger.info("Response request_id=%s status=%s (took %.2fms)", request_id, status_code or 0, process_time)


class SecurityHeadersMiddleware:
  """Middleware to strip server-identifying headers from responses."""

  def __init__(self, app: ASGIApp) -> None:
    """Store the downstream ASGI application."""
    self.app = app

  async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
    """Intercept response headers to remove identifying information."""
    if scope["type"] != "http":
      await self.app(scope, receive, send)
      return

    async def send_wrapper(message: dict[str, Any]) -> None:
      if message["type"] == "http.response.start":
        headers = MutableHeaders(scope=message)
        # Strip X-Powered-By if present
        if "x-powered-by" in headers:
          del headers["x-powered-by"]
        # Strip Server if present; uvicorn runs with --no-server-header for its own.
        if "server" in headers:
          del headers["server"]

      await send(message)

    await self.app(scope, receive, send_wrapper)
