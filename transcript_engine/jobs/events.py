"""Progress events emitted while a job runs, and the queue that carries them to a client."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from typing import Any, Literal

import msgspec

EventType = Literal["status", "progress", "complete", "error"]


@dataclass(frozen=True)
class JobEvent:
  """One message on a job's live progress stream."""

  type: EventType
  payload: dict[str, Any] = field(default_factory=dict)

  def as_dict(self) -> dict[str, Any]:
    """Serialize with ``type`` first and ``None`` fields dropped."""
    body: dict[str, Any] = {"type": self.type}
    body.update({key: value for key, value in self.payload.items() if value is not None})
    return body

  def as_sse(self) -> bytes:
    return b"data: " + msgspec.json.encode(self.as_dict()) + b"\n\n"


def status_event(message: str) -> JobEvent:
  return JobEvent("status", {"message": message})


def progress_event(*, current: int, total: int, filename: str, context: str | None = None, usage: dict[str, Any] | None = None) -> JobEvent:
  return JobEvent("progress", {"current": current, "total": total, "filename": filename, "context": context, "usage": usage})


def error_event(message: str, *, fatal: bool = False, unit_index: int | None = None, series_id: str | None = None) -> JobEvent:
  return JobEvent("error", {"message": message, "fatal": fatal, "unitIndex": unit_index, "seriesId": series_id})


def complete_event(*, download_url: str | None, stats: dict[str, Any], cost: dict[str, Any] | None) -> JobEvent:
  return JobEvent("complete", {"downloadUrl": download_url, "stats": stats, "cost": cost})


EventSink = Callable[[JobEvent], None]


class EventStream:
  """Unbounded queue of job events that a single consumer drains until closed."""

  def __init__(self) -> None:
    self._queue: asyncio.Queue[JobEvent | None] = asyncio.Queue()
    self._closed = False

  @property
  def closed(self) -> bool:
    return self._closed

  def emit(self, event: JobEvent) -> None:
    if self._closed:
      return
    self._queue.put_nowait(event)

  def close(self) -> None:
    if self._closed:
      return
    self._closed = True
    self._queue.put_nowait(None)

  async def __aiter__(self) -> AsyncIterator[JobEvent]:
    while True:
      event = await self._queue.get()
      if event is None:
        return
      yield event
