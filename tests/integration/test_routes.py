from __future__ import annotations

import json
import re
from pathlib import Path

import httpx
import pytest

from transcript_engine.ai.pacing import RequestPacer
from transcript_engine.ai.providers.base import AIModel, ModelResponse, Provider
from transcript_engine.api.deps import get_runtime
from transcript_engine.config import get_settings
from transcript_engine.jobs.store import JobStateStore
from transcript_engine.main import app
from transcript_engine.services.artifacts import ArtifactWriter
from transcript_engine.services.runtime import build_runtime
from transcript_engine.storage.job_state_repo import FileJobStateRepository, InMemoryJobStateRepository

_SERIES_COUNT = re.compile(r'EXACTLY (\d+) items with "type": "series"')
_SINGLE_COUNT = re.compile(r'EXACTLY (\d+) items with "type": "single"')


class ScriptedModel(AIModel):
  """Answer combo prompts with matching JSON and transcript prompts with a short transcript."""

  def __init__(self, name: str, *, combo_drift: int = 0) -> None:
    self.name = name
    self.combo_drift = combo_drift

  async def generate(self, prompt: str, *, max_tokens: int) -> ModelResponse:
    series_match = _SERIES_COUNT.search(prompt)
    if series_match:
      series = int(series_match.group(1))
      singles = int(_SINGLE_COUNT.search(prompt).group(1)) + self.combo_drift
      combos = [{"coach": f"Sam {i}", "client": f"Lee {i}", "location": "Austin, TX", "niche": "wholesaling", "type": "series"} for i in range(series)]
      combos += [{"coach": f"Ana {i}", "client": f"Bo {i}", "location": "Reno, NV", "niche": "fix-and-flip", "type": "single"} for i in range(singles)]
      return ModelResponse(content=json.dumps(combos), input_tokens=200, output_tokens=400)
    if "SERIES of" in prompt:
      body = "\n".join(f"# Episode {n}\n**Coach:** Sam\n**Client:** Lee\nSession {n}." for n in range(1, 5))
      return ModelResponse(content=body, input_tokens=1000, output_tokens=8000)
    return ModelResponse(content="**Coach:** Ana\n**Client:** Bo\nSession.", input_tokens=1000, output_tokens=2000)


class ScriptedProvider(Provider):
  def __init__(self, api_key: str, *, combo_drift: int = 0) -> None:
    self.name = "scripted"
    self.api_key = api_key
    self.combo_drift = combo_drift

  def get_model(self, model: str | None = None) -> AIModel:
    return ScriptedModel(model or "claude-sonnet-4-5-20250929", combo_drift=self.combo_drift)


@pytest.fixture
def runtime(tmp_path):
  runtime = build_runtime(get_settings(), repository=InMemoryJobStateRepository(), provider_factory=ScriptedProvider)
  runtime.pacer = RequestPacer(0)
  runtime.writer = ArtifactWriter(tmp_path)
  app.dependency_overrides[get_runtime] = lambda: runtime
  yield runtime
  app.dependency_overrides.clear()


@pytest.fixture
async def client(runtime):
  transport = httpx.ASGITransport(app=app)
  async with httpx.AsyncClient(transport=transport, base_url="http://test") as http_client:
    yield http_client


def _events(body: str) -> list[dict]:
  return [json.loads(line[len("data: ") :]) for line in body.splitlines() if line.startswith("data: ")]


def _payload(**overrides) -> dict:
  payload = {"apiKey": "sk-ant-test", "transcriptCount": 3, "prompt": "Write a coaching call.", "jobId": "job-1"}
  payload.update(overrides)
  return payload


@pytest.mark.anyio
async def test_health(client) -> None:
  response = await client.get("/health")

  assert response.status_code == 200
  assert response.json() == {"status": "ok"}
  assert response.headers["x-request-id"]


@pytest.mark.anyio
async def test_generate_streams_progress_until_complete(client, runtime) -> None:
  response = await client.post("/generate", json=_payload(transcriptCount=10))

  assert response.status_code == 200
  assert response.headers["content-type"].startswith("text/event-stream")
  events = _events(response.text)
  assert events[0]["type"] == "status"
  progress = [event for event in events if event["type"] == "progress"]
  assert sorted(event["current"] for event in progress) == list(range(1, 11))
  assert sum(1 for event in progress if "_series0_ep" in event["filename"]) == 4
  complete = events[-1]
  assert complete["type"] == "complete"
  assert complete["downloadUrl"] == "/download/transcripts_job-1.zip"
  assert complete["stats"]["state"] == "completed"
  assert complete["cost"]["calls"] == 7

  download = await client.get(complete["downloadUrl"])
  assert download.status_code == 200
  assert download.headers["content-type"] == "application/zip"

  status = await client.get("/status/job-1")
  assert status.json()["completedCount"] == 10
  assert status.json()["percentComplete"] == 100


@pytest.mark.anyio
@pytest.mark.parametrize(
  "overrides",
  [
    {"apiKey": ""},
    {"transcriptCount": 0},
    {"transcriptCount": "many"},
    {"prompt": "   "},
    {"jobId": "../etc"},
  ],
)
async def test_generate_rejects_malformed_requests(client, overrides) -> None:
  response = await client.post("/generate", json=_payload(**overrides))

  assert response.status_code == 400
  assert "sk-ant-test" not in response.text


@pytest.mark.anyio
async def test_generate_rejects_counts_over_the_limit(client, runtime) -> None:
  response = await client.post("/generate", json=_payload(transcriptCount=runtime.settings.max_transcript_count + 1))

  assert response.status_code == 400
  assert "transcriptCount" in response.json()["detail"]


@pytest.mark.anyio
async def test_generate_rejects_duplicate_job_ids(client, runtime, single_units) -> None:
  await runtime.store.create("job-1", 1, single_units(1))

  response = await client.post("/generate", json=_payload())

  assert response.status_code == 400
  assert response.json()["detail"] == "Job job-1 already exists."


@pytest.mark.anyio
async def test_generate_rejects_ids_persisted_by_an_earlier_process(client, runtime, tmp_path, single_units) -> None:
  earlier = JobStateStore(FileJobStateRepository(tmp_path / "state"))
  await earlier.create("job-1", 1, single_units(1))
  await earlier.cancel("job-1")
  await runtime.writer.write("job-1", "kept.md", "text")
  runtime.store = JobStateStore(FileJobStateRepository(tmp_path / "state"))

  response = await client.post("/generate", json=_payload())

  assert response.status_code == 400
  assert response.json()["detail"] == "Job job-1 already exists."
  assert (await client.get("/status/job-1")).json()["state"] == "cancelled"
  assert runtime.writer.list_artifacts("job-1") == [Path("kept.md")]


@pytest.mark.anyio
async def test_unsafe_ids_are_404_with_file_storage(client, runtime, tmp_path) -> None:
  runtime.store = JobStateStore(FileJobStateRepository(tmp_path / "state"))

  assert (await client.get("/status/my%20job")).status_code == 404
  assert (await client.get("/download-partial/my%20job")).status_code == 404
  assert (await client.delete("/jobs/my%20job")).status_code == 404


@pytest.mark.anyio
async def test_plan_mismatch_ends_the_stream_with_a_fatal_error(client, runtime) -> None:
  runtime.provider_factory = lambda api_key: ScriptedProvider(api_key, combo_drift=1)

  response = await client.post("/generate", json=_payload())

  events = _events(response.text)
  assert events[-1]["type"] == "error"
  assert events[-1]["fatal"] is True
  assert "Expected 3 combos" in events[-1]["message"]
  assert (await client.get("/status/job-1")).status_code == 404


@pytest.mark.anyio
@pytest.mark.parametrize("action", ["pause", "resume", "cancel"])
async def test_controls_on_unknown_jobs_return_404(client, action) -> None:
  response = await client.post(f"/{action}/missing")

  assert response.status_code == 404
  assert response.json()["success"] is False


@pytest.mark.anyio
async def test_pause_resume_cancel_cycle(client, runtime, single_units) -> None:
  await runtime.store.create("job-1", 2, single_units(2))

  paused = await client.post("/pause/job-1")
  assert paused.status_code == 200
  assert paused.json()["message"] == "Job paused"
  assert paused.json()["stats"]["state"] == "paused"

  again = await client.post("/pause/job-1")
  assert again.status_code == 409
  assert again.json() == {"success": False, "detail": "Cannot pause job in state: paused", "requestId": again.headers["x-request-id"]}

  resumed = await client.post("/resume/job-1")
  assert resumed.json()["stats"]["state"] == "running"

  cancelled = await client.post("/cancel/job-1")
  assert cancelled.json()["message"] == "Job cancelled"
  assert cancelled.json()["stats"]["cancelledAt"] is not None

  assert (await client.post("/resume/job-1")).status_code == 409


@pytest.mark.anyio
async def test_status_of_unknown_job_is_404(client) -> None:
  assert (await client.get("/status/missing")).status_code == 404


@pytest.mark.anyio
async def test_partial_download_packages_current_artifacts(client, runtime, single_units) -> None:
  await runtime.store.create("job-1", 3, single_units(3))
  await runtime.writer.write("job-1", "ana_bo_2025-01-01_1.md", "text")

  response = await client.get("/download-partial/job-1")

  assert response.status_code == 200
  assert response.headers["content-type"] == "application/zip"
  assert "transcripts_job-1.zip" in response.headers["content-disposition"]


@pytest.mark.anyio
async def test_partial_download_without_artifacts_is_404(client, runtime, single_units) -> None:
  await runtime.store.create("job-1", 3, single_units(3))

  assert (await client.get("/download-partial/job-1")).status_code == 404
  assert (await client.get("/download-partial/missing")).status_code == 404


@pytest.mark.anyio
async def test_download_of_unknown_archive_is_404(client) -> None:
  response = await client.get("/download/nothing.zip")

  assert response.status_code == 404
  assert response.json()["detail"] == "File not found"


@pytest.mark.anyio
async def test_delete_removes_state_and_artifacts(client, runtime, single_units) -> None:
  await runtime.store.create("job-1", 2, single_units(2))
  await runtime.writer.write("job-1", "a.md", "text")

  response = await client.delete("/jobs/job-1")

  assert response.status_code == 200
  assert response.json() == {"success": True, "message": "Job job-1 deleted"}
  assert runtime.store.get("job-1") is None
  assert runtime.writer.list_artifacts("job-1") == []
  assert (await client.delete("/jobs/job-1")).status_code == 404


@pytest.mark.anyio
async def test_pricing_and_metrics(client) -> None:
  pricing = (await client.get("/pricing")).json()
  metrics = (await client.get("/metrics")).json()

  assert pricing["defaultModel"] == "claude-sonnet-4-5-20250929"
  assert "claude-haiku-4-5-20251001" in pricing["models"]
  assert metrics["rateLimitedResponses"] == 0
  assert metrics["seriesSplitFallbacks"] >= 0
