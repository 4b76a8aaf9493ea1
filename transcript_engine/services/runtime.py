"""Process-wide collaborators shared by every job: store, pacer, retry policy and artifact writer."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from transcript_engine.ai.backoff import RetryPolicy
from transcript_engine.ai.pacing import RequestPacer
from transcript_engine.ai.providers.anthropic import AnthropicProvider
from transcript_engine.ai.providers.base import Provider
from transcript_engine.config import Settings
from transcript_engine.jobs.orchestrator import OrchestratorConfig
from transcript_engine.jobs.store import JobStateStore
from transcript_engine.services.artifacts import ArtifactWriter
from transcript_engine.storage.job_state_repo import FileJobStateRepository, InMemoryJobStateRepository, JobStateRepository

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[str], Provider]


@dataclass
class Runtime:
  """Everything a request handler needs to start and control jobs."""

  settings: Settings
  store: JobStateStore
  pacer: RequestPacer
  policy: RetryPolicy
  writer: ArtifactWriter
  orchestrator_config: OrchestratorConfig
  provider_factory: ProviderFactory
  tasks: dict[str, asyncio.Task] = field(default_factory=dict)
  # Job ids accepted but not yet recorded by the store (planning in progress).
  reserved: set[str] = field(default_factory=set)

  async def shutdown(self) -> None:
    """Cancel job tasks still running when the process stops."""
    pending = [task for task in self.tasks.values() if not task.done()]
    for task in pending:
      task.cancel()
    if pending:
      await asyncio.gather(*pending, return_exceptions=True)
      logger.info("Stopped %d running job tasks on shutdown", len(pending))


def build_repository(settings: Settings) -> JobStateRepository:
  """Pick the persistence backend named by ``settings.state_backend``."""
  if settings.state_backend == "memory":
    return InMemoryJobStateRepository()
  if settings.state_backend == "sql":
    from transcript_engine.storage.sql_job_state_repo import SqlJobStateRepository

    return SqlJobStateRepository()
  return FileJobStateRepository(settings.jobs_dir)


def build_runtime(settings: Settings, *, repository: JobStateRepository | None = None, provider_factory: ProviderFactory | None = None) -> Runtime:
  return Runtime(
    settings=settings,
    store=JobStateStore(repository or build_repository(settings)),
    pacer=RequestPacer(settings.rate_limit_spacing_ms),
    policy=RetryPolicy(max_retries=settings.max_retries, base_delay_ms=settings.retry_base_delay_ms),
    writer=ArtifactWriter(settings.output_dir),
    orchestrator_config=OrchestratorConfig(concurrency=settings.concurrency, pause_poll_interval=settings.pause_poll_interval_ms / 1000, hard_cancel=settings.hard_cancel),
    provider_factory=provider_factory or AnthropicProvider,
  )
