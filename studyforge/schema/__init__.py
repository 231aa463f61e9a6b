"""SQLAlchemy table models."""

from studyforge.schema.content import StudyItem, Subject, Tag, UnitNote
from studyforge.schema.jobs import IngestJob, IngestJobEvent

__all__ = ["IngestJob", "IngestJobEvent", "StudyItem", "Subject", "Tag", "UnitNote"]
