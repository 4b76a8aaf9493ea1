from __future__ import annotations

from sqlalchemy import JSON, BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from transcript_engine.core.database import Base


class JobStateRow(Base):
  __tablename__ = "job_states"

  job_id: Mapped[str] = mapped_column(String, primary_key=True)
  state: Mapped[str] = mapped_column(String, nullable=False, index=True)
  payload_json: Mapped[dict] = mapped_column(JSON, nullable=False)
  updated_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
