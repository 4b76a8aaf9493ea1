"""Shared test configuration."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

# Keep the app's own runtime away from the repository tree.
_TMP_ROOT = Path(tempfile.mkdtemp(prefix="transcripts-tests-"))
os.environ.setdefault("TRANSCRIPTS_STATE_BACKEND", "memory")
os.environ.setdefault("TRANSCRIPTS_OUTPUT_DIR", str(_TMP_ROOT / "temp"))
os.environ.setdefault("TRANSCRIPTS_JOBS_DIR", str(_TMP_ROOT / "jobs"))
os.environ.setdefault("TRANSCRIPTS_LOG_DIR", str(_TMP_ROOT / "logs"))
os.environ.setdefault("TRANSCRIPTS_ALLOWED_ORIGINS", "http://localhost")

import asyncio  # noqa: E402

import pytest  # noqa: E402

from transcript_engine.ai.errors import rate_limit_counter  # noqa: E402
from transcript_engine.jobs.models import GenerationUnit  # noqa: E402


@pytest.fixture
def anyio_backend() -> str:
  return "asyncio"


@pytest.fixture(autouse=True)
def _reset_rate_limit_counter():
  rate_limit_counter.reset()
  yield
  rate_limit_counter.reset()


class SleepRecorder:
  """Stand-in for asyncio.sleep that records requested delays and only yields."""

  def __init__(self) -> None:
    self.delays: list[float] = []

  async def __call__(self, delay: float) -> None:
    self.delays.append(delay)
    await asyncio.sleep(0)

  @property
  def total(self) -> float:
    return sum(self.delays)


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
  return SleepRecorder()


@pytest.fixture
def single_units():
  def _build(count: int) -> list[GenerationUnit]:
    return [GenerationUnit(index=i, kind="single", coach=f"Coach {i}", client=f"Client {i}", location="Austin, TX", niche="wholesaling") for i in range(count)]

  return _build
