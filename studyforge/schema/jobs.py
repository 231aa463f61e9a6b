from __future__ import annotations

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, func, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from studyforge.core.database import Base

_UTC_NOW_TEXT = text("""to_char((now() AT TIME ZONE 'UTC'), 'YYYY-MM-DD"T"HH24:MI:SS"Z"')""")


class IngestJob(Base):
  __tablename__ = "ingest_jobs"

  job_id: Mapped[str] = mapped_column(String, primary_key=True)
  user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  variant: Mapped[str] = mapped_column(String, nullable=False)
  status: Mapped[str] = mapped_column(String, nullable=False, index=True)
  title: Mapped[str] = mapped_column(String, nullable=False)
  source_path: Mapped[str | None] = mapped_column(String, nullable=True)
  content_kind: Mapped[str | None] = mapped_column(String, nullable=True)
  source_text: Mapped[str | None] = mapped_column(Text, nullable=True)
  explanations: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
  quota: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
  key_tags: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
  suggested_subject: Mapped[str | None] = mapped_column(String, nullable=True)
  suggested_unit: Mapped[str | None] = mapped_column(String, nullable=True)
  chunks: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
  total_batches: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  completed_batches: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  staged_items: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
  staged_cards: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
  suggestions: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
  committed_item_indexes: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
  committed_card_indexes: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
  negative_prompts: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
  errors: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
  approved_by: Mapped[str | None] = mapped_column(String, nullable=True)
  created_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_UTC_NOW_TEXT)
  updated_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_UTC_NOW_TEXT)
  completed_at: Mapped[str | None] = mapped_column(String, nullable=True)


class IngestJobEvent(Base):
  __tablename__ = "ingest_job_events"

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  job_id: Mapped[str] = mapped_column(ForeignKey("ingest_jobs.job_id", ondelete="CASCADE"), nullable=False, index=True)
  event_type: Mapped[str] = mapped_column(String, nullable=False, index=True)
  message: Mapped[str] = mapped_column(Text, nullable=False)
  created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
