"""Storage interfaces and simple backends for persisted job state."""

from __future__ import annotations

import asyncio
import copy
import json
import logging
import os
import re
from pathlib import Path
from typing import Any, Protocol

logger = logging.getLogger(__name__)

_SAFE_JOB_ID = re.compile(r"^[A-Za-z0-9_.-]+$")


class JobStateRepository(Protocol):
  """Repository contract for job-state snapshots."""

  async def save(self, snapshot: dict[str, Any]) -> None:
    """Persist (insert or replace) the snapshot keyed by its ``id``."""

  async def load(self, job_id: str) -> dict[str, Any] | None:
    """Return the last persisted snapshot, if any."""

  async def delete(self, job_id: str) -> None:
    """Remove the persisted snapshot; a missing entry is not an error."""


class InMemoryJobStateRepository:
  """Keep snapshots in a dictionary for tests and the memory backend."""

  def __init__(self) -> None:
    self.snapshots: dict[str, dict[str, Any]] = {}

  async def save(self, snapshot: dict[str, Any]) -> None:
    self.snapshots[str(snapshot["id"])] = copy.deepcopy(snapshot)

  async def load(self, job_id: str) -> dict[str, Any] | None:
    snapshot = self.snapshots.get(job_id)
    if snapshot is None:
      return None
    return copy.deepcopy(snapshot)

  async def delete(self, job_id: str) -> None:
    self.snapshots.pop(job_id, None)


class FileJobStateRepository:
  """Persist one JSON file per job under a directory."""

  def __init__(self, directory: Path) -> None:
    self._directory = directory

  @property
  def directory(self) -> Path:
    return self._directory

  def _path_for(self, job_id: str) -> Path | None:
    # Job ids become file names; anything path-like has no file.
    if not _SAFE_JOB_ID.match(job_id) or job_id in {".", ".."}:
      return None
    return self._directory / f"{job_id}.json"

  async def save(self, snapshot: dict[str, Any]) -> None:
    job_id = str(snapshot["id"])
    path = self._path_for(job_id)
    if path is None:
      raise ValueError(f"Invalid job id for file storage: {job_id!r}")
    payload = json.dumps(snapshot, indent=2, ensure_ascii=False)
    await asyncio.to_thread(self._write_atomic, path, payload)

  async def load(self, job_id: str) -> dict[str, Any] | None:
    path = self._path_for(job_id)
    if path is None:
      return None
    raw = await asyncio.to_thread(_read_text_or_none, path)
    if raw is None:
      return None
    try:
      return json.loads(raw)
    except json.JSONDecodeError:
      logger.warning("Ignoring unreadable job state file %s", path)
      return None

  async def delete(self, job_id: str) -> None:
    path = self._path_for(job_id)
    if path is None:
      return
    await asyncio.to_thread(path.unlink, missing_ok=True)

  def _write_atomic(self, path: Path, payload: str) -> None:
    self._directory.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(".json.tmp")
    tmp_path.write_text(payload, encoding="utf-8")
    os.replace(tmp_path, path)


def _read_text_or_none(path: Path) -> str | None:
  try:
    return path.read_text(encoding="utf-8")
  except FileNotFoundError:
    return None
