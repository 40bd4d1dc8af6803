from __future__ import annotations
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update as sa_update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .errors import NotFoundError, StoreError, VersionConflict
from .models import DocumentRecord

logger = logging.getLogger(__name__)


@dataclass
class Document:
	id: str
	data: Dict[str, Any] = field(default_factory=dict)
	version: int = 1


class DocumentStore:
	"""Collections of JSON documents addressed by (collection, id).

	Every write bumps the document version. Passing ``expected_version`` to
	``update`` turns it into a compare-and-swap.
	"""

	def __init__(self, db: Session) -> None:
		self.db = db

	def get(self, collection: str, doc_id: str) -> Document:
		try:
			row = self.db.get(DocumentRecord, (collection, doc_id))
		except SQLAlchemyError as err:
			raise StoreError(f"Failed to read {collection}/{doc_id}") from err
		if row is None:
			raise NotFoundError("Document", f"{collection}/{doc_id}")
		return Document(id=row.doc_id, data=dict(row.data or {}), version=row.version)

	def put(self, collection: str, doc_id: str, data: Dict[str, Any]) -> int:
		try:
			row = self.db.get(DocumentRecord, (collection, doc_id))
			if row is None:
				row = DocumentRecord(collection=collection, doc_id=doc_id, data=data, version=1)
				self.db.add(row)
			else:
				row.data = data
				row.version = row.version + 1
			self.db.commit()
			return row.version
		except SQLAlchemyError as err:
			self.db.rollback()
			raise StoreError(f"Failed to write {collection}/{doc_id}") from err

	def add(self, collection: str, data: Dict[str, Any]) -> str:
		doc_id = uuid.uuid4().hex
		self.put(collection, doc_id, data)
		return doc_id

	def update(
		self,
		collection: str,
		doc_id: str,
		fields: Dict[str, Any],
		*,
		expected_version: Optional[int] = None,
	) -> int:
		current = self.get(collection, doc_id)
		if expected_version is not None and current.version != expected_version:
			raise VersionConflict(collection, doc_id, expected_version)
		merged = {**current.data, **fields}
		stmt = (
			sa_update(DocumentRecord)
			.where(DocumentRecord.collection == collection)
			.where(DocumentRecord.doc_id == doc_id)
			.where(DocumentRecord.version == current.version)
			.values(data=merged, version=current.version + 1)
		)
		try:
			res = self.db.execute(stmt)
			self.db.commit()
		except SQLAlchemyError as err:
			self.db.rollback()
			raise StoreError(f"Failed to update {collection}/{doc_id}") from err
		if not res.rowcount:
			# Someone else wrote between our read and the conditional update
			raise VersionConflict(collection, doc_id, current.version)
		self.db.expire_all()
		return current.version + 1

	def query(self, collection: str, **filters: Any) -> List[Document]:
		stmt = select(DocumentRecord).where(DocumentRecord.collection == collection)
		for key, value in filters.items():
			# String equality narrows in SQL; every filter is re-checked below
			if isinstance(value, str):
				stmt = stmt.where(DocumentRecord.data[key].as_string() == value)
		try:
			rows = self.db.execute(stmt.order_by(DocumentRecord.created_at)).scalars().all()
		except SQLAlchemyError as err:
			raise StoreError(f"Failed to query {collection}") from err
		docs: List[Document] = []
		for row in rows:
			data = row.data or {}
			if all(data.get(key) == value for key, value in filters.items()):
				docs.append(Document(id=row.doc_id, data=dict(data), version=row.version))
		logger.debug("Query %s %s matched %d documents", collection, filters, len(docs))
		return docs
