"""Upstream error types and classification helpers."""

from __future__ import annotations

from collections.abc import Iterable

from transcript_engine.utils.counters import ProcessCounter

_RATE_LIMIT_HINTS: tuple[str, ...] = (
  "429",
  "rate limit",
  "rate_limit",
  "too many requests",
  "overloaded",
  "quota",
)

_TRANSIENT_HINTS: tuple[str, ...] = (
  "timeout",
  "timed out",
  "connection",
  "network",
  "service unavailable",
  "bad gateway",
  "gateway",
  "500",
  "502",
  "503",
  "504",
  "529",
)


class UpstreamError(Exception):
  """Failure calling the generative text provider."""

  def __init__(self, message: str, *, transient: bool, rate_limited: bool = False, status_code: int | None = None) -> None:
    super().__init__(message)
    self.message = message
    self.transient = transient
    self.rate_limited = rate_limited
    self.status_code = status_code


class UpstreamAbortedError(UpstreamError):
  """An in-flight call was cut short by the job's cancellation signal."""

  def __init__(self, message: str = "Upstream call aborted by cancellation.") -> None:
    super().__init__(message, transient=False)


def _match_hint(message: str, hints: Iterable[str]) -> bool:
  """Return True when any hint appears in the message."""
  for hint in hints:
    if hint in message:
      return True
  return False


def is_rate_limited(status_code: int | None, message: str) -> bool:
  """Return True when a failure carries a recognizable rate-limit signal."""
  if status_code == 429:
    return True
  return _match_hint(message.lower(), _RATE_LIMIT_HINTS)


def is_transient(status_code: int | None, message: str) -> bool:
  """Return True when a failure is worth retrying."""
  if status_code is not None:
    return status_code == 408 or status_code == 409 or status_code == 429 or status_code >= 500
  lowered = message.lower()
  return _match_hint(lowered, _RATE_LIMIT_HINTS) or _match_hint(lowered, _TRANSIENT_HINTS)


def classify_failure(exc: BaseException, *, status_code: int | None = None) -> UpstreamError:
  """Wrap an arbitrary provider exception into a typed ``UpstreamError``."""
  if isinstance(exc, UpstreamError):
    return exc
  resolved_status = status_code if status_code is not None else getattr(exc, "status_code", None)
  if not isinstance(resolved_status, int):
    resolved_status = None
  message = str(exc) or type(exc).__name__
  return UpstreamError(message, transient=is_transient(resolved_status, message), rate_limited=is_rate_limited(resolved_status, message), status_code=resolved_status)


# Process-wide tally of rate-limited upstream responses.
rate_limit_counter = ProcessCounter()
