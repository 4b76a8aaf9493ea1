"""Process-wide tallies exposed on the metrics route."""

from __future__ import annotations

import threading


class ProcessCounter:
  """Monotonic counter that is safe to bump from any thread or task."""

  def __init__(self) -> None:
    self._lock = threading.Lock()
    self._count = 0

  def increment(self) -> int:
    with self._lock:
      self._count += 1
      return self._count

  @property
  def value(self) -> int:
    with self._lock:
      return self._count

  def reset(self) -> None:
    with self._lock:
      self._count = 0
