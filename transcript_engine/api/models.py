from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class GenerateTranscriptsRequest(BaseModel):
  """Job submission payload."""

  model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True, extra="ignore")

  api_key: str = Field(alias="apiKey", min_length=1)
  transcript_count: int = Field(alias="transcriptCount", ge=1)
  prompt: str = Field(min_length=1)
  job_id: str = Field(alias="jobId", min_length=1, max_length=128, pattern=r"^[A-Za-z0-9_.-]+$")
  model: str | None = Field(default=None, min_length=1)


class JobStatsResponse(BaseModel):
  """Progress snapshot for a job."""

  model_config = ConfigDict(populate_by_name=True)

  id: str
  state: str
  completed_count: int = Field(alias="completedCount")
  total_count: int = Field(alias="totalCount")
  pending_count: int = Field(alias="pendingCount")
  percent_complete: int = Field(alias="percentComplete")
  elapsed_time: int = Field(alias="elapsedTime")
  estimated_time_remaining: int = Field(alias="estimatedTimeRemaining")
  start_time: int = Field(alias="startTime")
  paused_at: int | None = Field(default=None, alias="pausedAt")
  cancelled_at: int | None = Field(default=None, alias="cancelledAt")
  completed_at: int | None = Field(default=None, alias="completedAt")
  error_count: int = Field(default=0, alias="errorCount")
  cost: dict[str, Any] | None = None


class JobControlResponse(BaseModel):
  """Result of a pause/resume/cancel request."""

  success: bool
  message: str
  stats: JobStatsResponse