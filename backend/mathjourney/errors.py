from __future__ import annotations


class JourneyError(Exception):
	"""Base class for errors reported to API callers."""


class NotFoundError(JourneyError):
	def __init__(self, kind: str, key: str) -> None:
		super().__init__(f"{kind} not found: {key}")
		self.kind = kind
		self.key = key


class OwnershipError(JourneyError):
	def __init__(self, journey_id: str) -> None:
		super().__init__(f"Unauthorized: you do not have permission to update journey {journey_id}")
		self.journey_id = journey_id


class InvalidTaskUpdate(JourneyError):
	pass


class ProgressionConflict(JourneyError):
	pass


class StoreError(JourneyError):
	"""The document store failed (connection, integrity or driver error)."""


class VersionConflict(StoreError):
	def __init__(self, collection: str, doc_id: str, expected_version: int) -> None:
		super().__init__(f"{collection}/{doc_id} changed since version {expected_version}")
		self.collection = collection
		self.doc_id = doc_id
		self.expected_version = expected_version


class CompletionError(JourneyError):
	"""The text-completion service failed or timed out."""
