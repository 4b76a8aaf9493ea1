"""Retry logic with exponential backoff for upstream calls."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from transcript_engine.ai.errors import UpstreamAbortedError, UpstreamError, classify_failure, rate_limit_counter
from transcript_engine.utils.counters import ProcessCounter

T = TypeVar("T")
Sleep = Callable[[float], Awaitable[None]]
RetryHook = Callable[[int, UpstreamError, float], None]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
  """How many extra attempts to make and how long to wait between them."""

  max_retries: int = 2
  base_delay_ms: int = 1000

  def delay_for(self, attempt: int) -> float:
    """Return the wait in seconds after the given 0-based failed attempt."""
    return (self.base_delay_ms * (2**attempt)) / 1000


async def retry_with_backoff(func: Callable[[], Awaitable[T]], policy: RetryPolicy, *, sleep: Sleep = asyncio.sleep, on_retry: RetryHook | None = None, counter: ProcessCounter = rate_limit_counter) -> T:
  """
  Execute ``func`` and retry transient upstream failures.

  Delays: base, base*2, base*4, ... for up to ``policy.max_retries`` extra attempts.
  Non-transient failures and cancellations surface immediately; once attempts are
  exhausted the last error is raised.
  """
  attempt = 0
  while True:
    try:
      return await func()
    except UpstreamAbortedError:
      raise
    except Exception as exc:  # noqa: BLE001
      error = classify_failure(exc)
      if error.rate_limited:
        counter.increment()

      if not error.transient or attempt >= policy.max_retries:
        if error is exc:
          raise
        raise error from exc

      delay = policy.delay_for(attempt)
      logger.warning("Retry attempt %d/%d needed. Error: %s. Retrying in %.2fs...", attempt + 1, policy.max_retries, error.message, delay)
      if on_retry is not None:
        on_retry(attempt + 1, error, delay)
      await sleep(delay)
      attempt += 1
