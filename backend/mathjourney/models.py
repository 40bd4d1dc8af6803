from __future__ import annotations
from datetime import datetime, timezone
from sqlalchemy import Column, String, DateTime, Integer, JSON
from .db import Base


def _utcnow() -> datetime:
	return datetime.now(timezone.utc)


class DocumentRecord(Base):
	__tablename__ = "documents"
	# Composite key: one namespace per collection ("journeys", "worksheetResults", ...)
	collection = Column(String(64), primary_key=True)
	doc_id = Column(String(255), primary_key=True)
	data = Column(JSON, nullable=False)
	# Bumped on every write; compare-and-swap updates match on it
	version = Column(Integer, default=1, nullable=False)
	created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
	updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)
