from __future__ import annotations
import logging
import uuid
from typing import Any, Callable, Dict, List, Optional

from fastapi import APIRouter, Body, Depends
from pydantic import Field

from .. import progression
from ..deps import get_store
from ..errors import OwnershipError
from ..repository import insert_journey, journeys_for_user, load_journey, save_journey
from ..schemas import CamelModel, EndReason, Journey
from ..store import DocumentStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/journeys", tags=["journeys"])


class CreateJourneyRequest(CamelModel):
	user_id: str
	unit: str
	course_level: str
	goals: Any
	preferences: Any
	start_date: str


class TaskUpdateRequest(CamelModel):
	user_id: str
	completed: bool
	is_manual_update: bool = True
	worksheet_result_id: Optional[str] = None
	score: Optional[int] = None


class CompletionRequest(CamelModel):
	user_id: str
	completed: bool
	end_reason: Optional[EndReason] = None


class AddTasksRequest(CamelModel):
	user_id: str
	tasks: List[Dict[str, Any]] = Field(min_length=1)


class TopicsToReviewRequest(CamelModel):
	user_id: str
	topics_to_review: List[str]


def _owned(journey: Journey, user_id: str) -> Journey:
	if journey.user_id != user_id:
		raise OwnershipError(journey.id)
	return journey


def _mutate(store: DocumentStore, journey_id: str, user_id: str, change: Callable[[Journey], Journey]) -> Journey:
	journey, version = load_journey(store, journey_id)
	updated = change(_owned(journey, user_id))
	save_journey(store, updated, expected_version=version)
	return updated


@router.post("/create", status_code=201)
def create_journey(req: CreateJourneyRequest, store: DocumentStore = Depends(get_store)):
	journey = progression.create_journey(
		journey_id=uuid.uuid4().hex,
		user_id=req.user_id,
		unit=req.unit,
		course_level=req.course_level,
		goals=req.goals,
		preferences=req.preferences,
		start_date=req.start_date,
	)
	insert_journey(store, journey)
	logger.info("Created journey %s for %s", journey.id, journey.user_id)
	return {"success": True, "journeyId": journey.id, "journey": journey.to_document()}


@router.get("/user/{user_id}")
def list_user_journeys(user_id: str, store: DocumentStore = Depends(get_store)):
	return {"success": True, "journeys": [j.to_document() for j in journeys_for_user(store, user_id)]}


@router.get("/{journey_id}")
def get_journey(journey_id: str, store: DocumentStore = Depends(get_store)):
	journey, _ = load_journey(store, journey_id)
	return {"success": True, "journey": journey.to_document()}


@router.patch("/{journey_id}/tasks/{day}")
def update_task(journey_id: str, day: int, req: TaskUpdateRequest, store: DocumentStore = Depends(get_store)):
	if req.is_manual_update or not (req.completed and req.worksheet_result_id):
		change = lambda j: progression.apply_manual_task_update(j, day, req.completed)
	else:
		change = lambda j: progression.attach_worksheet_result(j, day, req.worksheet_result_id, req.score)
	updated = _mutate(store, journey_id, req.user_id, change)
	task = updated.task_for_day(day)
	return {
		"success": True,
		"message": "Task updated successfully",
		"updatedTask": task.model_dump(by_alias=True, mode="json"),
	}


@router.patch("/{journey_id}/complete")
def update_completion(journey_id: str, req: CompletionRequest, store: DocumentStore = Depends(get_store)):
	_mutate(store, journey_id, req.user_id, lambda j: progression.set_completion(j, req.completed, req.end_reason))
	state = "completed" if req.completed else "marked as incomplete"
	return {"success": True, "message": f"Journey {state} successfully"}


@router.post("/{journey_id}/tasks")
def add_tasks(journey_id: str, req: AddTasksRequest, store: DocumentStore = Depends(get_store)):
	added = []

	def change(journey: Journey) -> Journey:
		updated, new_tasks = progression.append_tasks(journey, req.tasks)
		added[:] = new_tasks
		return updated

	_mutate(store, journey_id, req.user_id, change)
	return {
		"success": True,
		"message": "Tasks added successfully",
		"addedTasks": [t.model_dump(by_alias=True, mode="json") for t in added],
	}


@router.patch("/{journey_id}/topics-to-review")
def update_topics_to_review(journey_id: str, req: TopicsToReviewRequest, store: DocumentStore = Depends(get_store)):
	_mutate(store, journey_id, req.user_id, lambda j: progression.set_topics_to_review(j, req.topics_to_review))
	return {"success": True, "message": "Topics to review updated successfully"}


@router.put("/{journey_id}/full-update")
def full_update(journey_id: str, data: Dict[str, Any] = Body(...), store: DocumentStore = Depends(get_store)):
	camel_id = data.pop("userId", None)
	snake_id = data.pop("user_id", None)
	user_id = str(camel_id or snake_id or "")
	_mutate(store, journey_id, user_id, lambda j: progression.replace_journey(j, data))
	return {"success": True, "message": "Journey updated successfully", "journeyId": journey_id}
