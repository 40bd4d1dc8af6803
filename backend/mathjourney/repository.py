"""Typed access to the document collections.

Documents are validated into schema models when loaded, so a malformed
document fails here rather than deep inside scoring or progression.
"""

from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional, Tuple

from .errors import NotFoundError
from .schemas import Journey, Question, Worksheet, WorksheetResult
from .store import Document, DocumentStore

logger = logging.getLogger(__name__)

JOURNEYS = "journeys"
WORKSHEETS = "worksheets"
WORKSHEET_RESULTS = "worksheetResults"
TEST_QUESTIONS = "test-questions"
PROGRESS_ANALYSES = "progressAnalyses"
LEARNING_RESOURCES = "learningResources"


def _get(store: DocumentStore, collection: str, doc_id: str, kind: str) -> Document:
	try:
		return store.get(collection, doc_id)
	except NotFoundError:
		raise NotFoundError(kind, doc_id) from None


def _with_id(doc: Document) -> Dict[str, Any]:
	return {**doc.data, "id": doc.id}


# Journeys

def load_journey(store: DocumentStore, journey_id: str) -> Tuple[Journey, int]:
	"""Return the journey and the document version it was read at."""
	doc = _get(store, JOURNEYS, journey_id, "Journey")
	return Journey.model_validate(_with_id(doc)), doc.version


def insert_journey(store: DocumentStore, journey: Journey) -> int:
	return store.put(JOURNEYS, journey.id, journey.to_document())


def save_journey(store: DocumentStore, journey: Journey, expected_version: int) -> int:
	return store.update(JOURNEYS, journey.id, journey.to_document(), expected_version=expected_version)


def journeys_for_user(store: DocumentStore, user_id: str) -> List[Journey]:
	return [Journey.model_validate(_with_id(doc)) for doc in store.query(JOURNEYS, userId=user_id)]


# Worksheets and questions

def load_worksheet(store: DocumentStore, worksheet_id: str) -> Worksheet:
	return Worksheet.model_validate(_with_id(_get(store, WORKSHEETS, worksheet_id, "Worksheet")))


def save_worksheet(store: DocumentStore, worksheet: Worksheet) -> None:
	store.put(WORKSHEETS, worksheet.id, worksheet.to_document())


def load_question(store: DocumentStore, question_id: str) -> Dict[str, Any]:
	return _with_id(_get(store, TEST_QUESTIONS, question_id, "Question"))


def save_question(store: DocumentStore, question_id: str, data: Dict[str, Any]) -> None:
	store.put(TEST_QUESTIONS, question_id, data)


def find_questions(store: DocumentStore, topic: Optional[str] = None, difficulty: Optional[str] = None) -> List[Dict[str, Any]]:
	filters: Dict[str, Any] = {}
	if topic:
		filters["topic"] = topic
	if difficulty:
		filters["difficulty"] = difficulty
	return [_with_id(doc) for doc in store.query(TEST_QUESTIONS, **filters)]


# Results and analyses

def load_result(store: DocumentStore, result_id: str) -> WorksheetResult:
	return WorksheetResult.model_validate(_with_id(_get(store, WORKSHEET_RESULTS, result_id, "Worksheet result")))


def save_result(store: DocumentStore, result: WorksheetResult) -> None:
	store.put(WORKSHEET_RESULTS, result.id, result.to_document())


def save_progress_analysis(store: DocumentStore, data: Dict[str, Any]) -> str:
	doc_id = store.add(PROGRESS_ANALYSES, data)
	logger.info("Stored progress analysis %s for result %s", doc_id, data.get("worksheetResultId"))
	return doc_id


def learning_resources_for(store: DocumentStore, concepts: List[str]) -> List[Dict[str, Any]]:
	"""Extra resources whose ``topics`` list shares at least one entry with ``concepts``."""
	if not concepts:
		return []
	wanted = set(concepts)
	found = []
	for doc in store.query(LEARNING_RESOURCES):
		topics = doc.data.get("topics")
		if isinstance(topics, list) and wanted.intersection(topics):
			found.append(_with_id(doc))
	return found
