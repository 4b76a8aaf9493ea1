"""Upstream client adapter: pacing, retry and optional hard-cancel around a provider model."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from transcript_engine.ai.backoff import RetryHook, RetryPolicy, Sleep, retry_with_backoff
from transcript_engine.ai.errors import UpstreamAbortedError, rate_limit_counter
from transcript_engine.ai.pacing import RequestPacer
from transcript_engine.ai.providers.base import AIModel, ModelResponse
from transcript_engine.utils.counters import ProcessCounter

logger = logging.getLogger(__name__)

ModelFactory = Callable[[str], AIModel]


@dataclass(frozen=True)
class UpstreamResult:
  """Text and token usage of one successful upstream call."""

  text: str
  input_tokens: int
  output_tokens: int


class UpstreamClient:
  """Issue paced, retried calls to one provider on behalf of a job."""

  def __init__(self, model_factory: ModelFactory, pacer: RequestPacer, policy: RetryPolicy, *, sleep: Sleep = asyncio.sleep, counter: ProcessCounter = rate_limit_counter) -> None:
    self._model_factory = model_factory
    self._pacer = pacer
    self._policy = policy
    self._sleep = sleep
    self._counter = counter

  async def invoke(self, prompt: str, model: str, max_output_tokens: int, *, cancel_event: asyncio.Event | None = None, abort_in_flight: bool = False, on_retry: RetryHook | None = None) -> UpstreamResult:
    """Call the model, pacing every attempt and retrying transient failures.

    A set ``cancel_event`` stops the next attempt from being issued. With
    ``abort_in_flight`` the event also cancels a call already on the wire.
    Either way ``UpstreamAbortedError`` is raised.
    """
    ai_model = self._model_factory(model)

    async def _attempt() -> ModelResponse:
      if cancel_event is not None and cancel_event.is_set():
        raise UpstreamAbortedError("Upstream call skipped after cancellation.")
      await self._pacer.wait_turn()
      # The pacing wait may span the cancel.
      if cancel_event is not None and cancel_event.is_set():
        raise UpstreamAbortedError("Upstream call skipped after cancellation.")
      if cancel_event is None or not abort_in_flight:
        return await ai_model.generate(prompt, max_tokens=max_output_tokens)
      return await _race_abort(ai_model.generate(prompt, max_tokens=max_output_tokens), cancel_event)

    sleep = self._sleep if cancel_event is None else _cancellable_sleep(self._sleep, cancel_event)
    response = await retry_with_backoff(_attempt, self._policy, sleep=sleep, on_retry=on_retry, counter=self._counter)
    return UpstreamResult(text=response.content, input_tokens=response.input_tokens, output_tokens=response.output_tokens)


def _cancellable_sleep(sleep: Sleep, cancel_event: asyncio.Event) -> Sleep:
  """Wrap ``sleep`` so a set ``cancel_event`` ends the backoff wait early."""

  async def _sleep(delay: float) -> None:
    sleep_task = asyncio.ensure_future(sleep(delay))
    cancel_task = asyncio.ensure_future(cancel_event.wait())
    try:
      await asyncio.wait({sleep_task, cancel_task}, return_when=asyncio.FIRST_COMPLETED)
      if sleep_task.done():
        sleep_task.result()
      else:
        # The following attempt sees the event and raises UpstreamAbortedError.
        logger.info("Retry backoff cut short by cancellation.")
    finally:
      for task in (sleep_task, cancel_task):
        if not task.done():
          task.cancel()

  return _sleep


async def _race_abort(call: Awaitable[ModelResponse], abort_event: asyncio.Event) -> ModelResponse:
  call_task = asyncio.ensure_future(call)
  abort_task = asyncio.ensure_future(abort_event.wait())
  try:
    done, _ = await asyncio.wait({call_task, abort_task}, return_when=asyncio.FIRST_COMPLETED)
    if call_task in done:
      return call_task.result()
    call_task.cancel()
    logger.info("In-flight upstream call aborted by cancellation.")
    raise UpstreamAbortedError()
  finally:
    abort_task.cancel()
    if not call_task.done():
      call_task.cancel()
