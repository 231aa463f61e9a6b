from __future__ import annotations

from sqlalchemy import DateTime, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from studyforge.core.database import Base


class Subject(Base):
  __tablename__ = "subjects"
  __table_args__ = (UniqueConstraint("family", "key", name="ux_subjects_family_key"),)

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  family: Mapped[str] = mapped_column(String, nullable=False, index=True)
  key: Mapped[str] = mapped_column(String, nullable=False)
  name: Mapped[str] = mapped_column(String, nullable=False)
  units: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
  item_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  card_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
  updated_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())


class UnitNote(Base):
  __tablename__ = "unit_notes"
  __table_args__ = (UniqueConstraint("family", "subject_key", "unit_key", name="ux_unit_notes_unit"),)

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  family: Mapped[str] = mapped_column(String, nullable=False)
  subject_key: Mapped[str] = mapped_column(String, nullable=False)
  unit_key: Mapped[str] = mapped_column(String, nullable=False)
  unit_name: Mapped[str] = mapped_column(String, nullable=False)
  notes: Mapped[str] = mapped_column(Text, nullable=False)
  updated_by: Mapped[str | None] = mapped_column(String, nullable=True)
  updated_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())


class StudyItem(Base):
  __tablename__ = "study_items"

  item_id: Mapped[str] = mapped_column(String, primary_key=True)
  kind: Mapped[str] = mapped_column(String, nullable=False, index=True)
  family: Mapped[str] = mapped_column(String, nullable=False)
  subject_key: Mapped[str] = mapped_column(String, nullable=False, index=True)
  subject_name: Mapped[str] = mapped_column(String, nullable=False)
  unit_key: Mapped[str] = mapped_column(String, nullable=False, index=True)
  unit_name: Mapped[str] = mapped_column(String, nullable=False)
  source_job_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  source_index: Mapped[int] = mapped_column(Integer, nullable=False)
  origin: Mapped[str] = mapped_column(String, nullable=False)
  status: Mapped[str] = mapped_column(String, nullable=False, default="approved")
  approved_by: Mapped[str] = mapped_column(String, nullable=False)
  approved_at: Mapped[str] = mapped_column(String, nullable=False)
  tags: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
  payload: Mapped[dict] = mapped_column(JSONB, nullable=False)
  created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Tag(Base):
  __tablename__ = "tags"

  name: Mapped[str] = mapped_column(String, primary_key=True)
  created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
