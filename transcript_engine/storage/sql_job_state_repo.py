"""SQL-backed job-state repository using SQLAlchemy."""

from __future__ import annotations

import time
from typing import Any

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from transcript_engine.core.database import get_session_factory
from transcript_engine.schema.job_states import JobStateRow


class SqlJobStateRepository:
  """Persist job-state snapshots to the ``job_states`` table."""

  def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
    self._session_factory = session_factory or get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def save(self, snapshot: dict[str, Any]) -> None:
    job_id = str(snapshot["id"])
    async with self._session_factory() as session:
      row = await session.get(JobStateRow, job_id)
      now_ms = int(time.time() * 1000)
      if row is None:
        session.add(JobStateRow(job_id=job_id, state=str(snapshot["state"]), payload_json=snapshot, updated_at=now_ms))
      else:
        row.state = str(snapshot["state"])
        row.payload_json = snapshot
        row.updated_at = now_ms
      await session.commit()

  async def load(self, job_id: str) -> dict[str, Any] | None:
    async with self._session_factory() as session:
      row = await session.get(JobStateRow, job_id)
      if row is None:
        return None
      return dict(row.payload_json)

  async def delete(self, job_id: str) -> None:
    async with self._session_factory() as session:
      await session.execute(delete(JobStateRow).where(JobStateRow.job_id == job_id))
      await session.commit()
