"""Global minimum spacing between upstream call issuances."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[None]]


class RequestPacer:
  """Own the shared last-call timestamp and hand out call slots one at a time."""

  def __init__(self, spacing_ms: int, *, clock: Clock = time.monotonic, sleep: Sleep = asyncio.sleep) -> None:
    if spacing_ms < 0:
      raise ValueError("spacing_ms must be zero or positive.")
    self._spacing = spacing_ms / 1000
    self._clock = clock
    self._sleep = sleep
    self._lock = asyncio.Lock()
    self._last_call: float | None = None

  @property
  def spacing_seconds(self) -> float:
    return self._spacing

  @property
  def last_call(self) -> float | None:
    return self._last_call

  async def wait_turn(self) -> float:
    """Wait until the spacing has elapsed since the previous issuance, then stamp now.

    The wait and the stamp happen under one lock, so concurrent callers are
    released strictly one spacing apart. Returns the seconds waited.
    """
    async with self._lock:
      waited = 0.0
      if self._last_call is not None:
        remaining = self._spacing - (self._clock() - self._last_call)
        if remaining > 0:
          await self._sleep(remaining)
          waited = remaining
      self._last_call = self._clock()
      return waited
