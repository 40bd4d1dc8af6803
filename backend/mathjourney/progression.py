"""Journey progression.

A journey is either active on some (topic, difficulty) or completed with an
end reason. Each analysed worksheet result moves it forward through
``apply_progression``, which evaluates ``RULES`` top to bottom and takes the
first decision returned. The remaining functions here are the other journey
mutations exposed over HTTP (manual task updates, appending tasks, ...).

All functions work on a deep copy of the journey and return it; callers
persist the copy.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from pydantic import TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from .errors import InvalidTaskUpdate, NotFoundError, ProgressionConflict
from .schemas import (
	Difficulty,
	EndReason,
	Journey,
	ProgressionLevel,
	ProgressionRecommendation,
	ResourceTask,
	Task,
	TopicProgress,
	WorksheetResult,
	WorksheetTask,
	utcnow,
)
from .topics import TOPICS, canonical_topic, is_last_topic, resources_for, worksheet_id

logger = logging.getLogger(__name__)

MASTERY_PERCENTAGE = 80
MAX_EASY_ATTEMPTS = 2

_task_adapter = TypeAdapter(Task)


@dataclass(frozen=True)
class ProgressionContext:
	journey: Journey
	result: WorksheetResult
	recommendation: ProgressionRecommendation
	current_topic: str
	# None when the recommended topic is not one of TOPICS
	next_topic: Optional[str]
	# attempts.easy for the current topic before this attempt is recorded
	prior_easy_attempts: int


@dataclass(frozen=True)
class Decision:
	rule: str
	end_reason: Optional[EndReason] = None
	next_topic: Optional[str] = None
	next_difficulty: Optional[Difficulty] = None

	@property
	def ends_journey(self) -> bool:
		return self.end_reason is not None


@dataclass(frozen=True)
class ProgressionRule:
	name: str
	decide: Callable[[ProgressionContext], Optional[Decision]]


@dataclass
class Transition:
	journey: Journey
	decision: Decision
	new_tasks: List[Union[ResourceTask, WorksheetTask]] = field(default_factory=list)


def _recommended_completion(ctx: ProgressionContext) -> Optional[Decision]:
	if ctx.recommendation.journey_complete is True:
		reason = ctx.recommendation.end_reason or EndReason.COMPLETED_ALL_TOPICS
		return Decision("recommended_completion", end_reason=reason)
	return None


def _last_topic_advanced(ctx: ProgressionContext) -> Optional[Decision]:
	if not is_last_topic(ctx.current_topic):
		return None
	if ctx.recommendation.level == ProgressionLevel.NEXT_TOPIC or ctx.next_topic is None:
		return Decision("last_topic_advanced", end_reason=EndReason.COMPLETED_ALL_TOPICS)
	return None


def _last_topic_mastered(ctx: ProgressionContext) -> Optional[Decision]:
	# Overrides a conservative recommendation on the hardest tier
	if (
		is_last_topic(ctx.current_topic)
		and ctx.result.percentage_score >= MASTERY_PERCENTAGE
		and ctx.result.difficulty == Difficulty.HARD
	):
		return Decision("last_topic_mastered", end_reason=EndReason.COMPLETED_ALL_TOPICS)
	return None


def _easy_attempts_exhausted(ctx: ProgressionContext) -> Optional[Decision]:
	if (
		ctx.next_topic == ctx.current_topic
		and ctx.result.difficulty == Difficulty.EASY
		and ctx.prior_easy_attempts >= MAX_EASY_ATTEMPTS
	):
		return Decision("easy_attempts_exhausted", end_reason=EndReason.MAX_ATTEMPTS_REACHED)
	return None


def _advance(ctx: ProgressionContext) -> Optional[Decision]:
	return Decision(
		"advance",
		next_topic=ctx.next_topic or ctx.current_topic,
		next_difficulty=ctx.recommendation.next_difficulty,
	)


RULES: Tuple[ProgressionRule, ...] = (
	ProgressionRule("recommended_completion", _recommended_completion),
	ProgressionRule("last_topic_advanced", _last_topic_advanced),
	ProgressionRule("last_topic_mastered", _last_topic_mastered),
	ProgressionRule("easy_attempts_exhausted", _easy_attempts_exhausted),
	ProgressionRule("advance", _advance),
)


def decide(ctx: ProgressionContext, rules: Sequence[ProgressionRule] = RULES) -> Decision:
	for rule in rules:
		decision = rule.decide(ctx)
		if decision is not None:
			return decision
	raise RuntimeError("progression rules must end with a catch-all rule")


def build_tasks(journey: Journey, topic: str, difficulty: Difficulty) -> List[Union[ResourceTask, WorksheetTask]]:
	"""Resource tasks for ``topic`` followed by one worksheet, numbered after the last existing day."""
	start = journey.next_day()
	tasks: List[Union[ResourceTask, WorksheetTask]] = []
	for offset, resource in enumerate(resources_for(topic)):
		tasks.append(
			ResourceTask(
				topic=topic,
				day=start + offset,
				title=resource["title"],
				url=resource["url"],
				resource_type=resource["type"],
			)
		)
	tasks.append(
		WorksheetTask(
			topic=topic,
			day=start + len(tasks),
			worksheet_id=worksheet_id(topic, difficulty),
			difficulty=difficulty,
		)
	)
	return tasks


def _ensure_progress(journey: Journey, topic: str) -> TopicProgress:
	progress = journey.progress_for(topic)
	if not progress.total_resources:
		progress.total_resources = len(resources_for(topic))
	return progress


def _find_result_task(journey: Journey, result: WorksheetResult) -> Optional[WorksheetTask]:
	worksheets = [t for t in journey.tasks if isinstance(t, WorksheetTask)]
	for task in worksheets:
		if task.worksheet_result_id == result.id:
			return task
	for task in reversed(worksheets):
		if not task.completed and task.worksheet_id == result.worksheet_id:
			return task
	topic = canonical_topic(result.topic) or result.topic
	for task in reversed(worksheets):
		if not task.completed and task.topic == topic and task.difficulty == result.difficulty:
			return task
	return None


def _append_unique(values: List[str], value: str) -> None:
	if value not in values:
		values.append(value)


def create_journey(
	*,
	journey_id: str,
	user_id: str,
	unit: str,
	course_level: str,
	goals: Any,
	preferences: Any,
	start_date: str,
	now: Optional[datetime] = None,
) -> Journey:
	"""New journey on the first topic at medium difficulty."""
	journey = Journey(
		id=journey_id,
		user_id=user_id,
		unit=unit,
		course_level=course_level,
		goals=goals,
		preferences=preferences,
		start_date=start_date,
		last_updated=now or utcnow(),
	)
	for topic in TOPICS:
		_ensure_progress(journey, topic)
	journey.tasks.extend(build_tasks(journey, TOPICS[0], Difficulty.MEDIUM))
	return journey


def apply_progression(
	journey: Journey,
	result: WorksheetResult,
	recommendation: ProgressionRecommendation,
	now: Optional[datetime] = None,
) -> Transition:
	if journey.completed:
		raise ProgressionConflict(f"Journey {journey.id} is already completed")
	if result.id in journey.progressed_result_ids:
		raise ProgressionConflict(f"Worksheet result {result.id} was already applied to journey {journey.id}")

	now = now or utcnow()
	updated = journey.model_copy(deep=True)
	current = canonical_topic(result.topic) or result.topic
	progress = _ensure_progress(updated, current)
	ctx = ProgressionContext(
		journey=updated,
		result=result,
		recommendation=recommendation,
		current_topic=current,
		next_topic=canonical_topic(recommendation.next_topic),
		prior_easy_attempts=progress.attempts.easy,
	)
	decision = decide(ctx)
	logger.info(
		"Journey %s: rule %s fired for %s/%s at %d%%",
		journey.id, decision.rule, current, result.difficulty.value, result.percentage_score,
	)

	progress.attempts.record(result.difficulty)
	progress.best_score = max(progress.best_score, max(0, min(100, result.percentage_score)))
	progress.last_attempt_date = now

	task = _find_result_task(updated, result)
	if task is not None:
		task.completed = True
		task.completed_at = now
		task.worksheet_result_id = result.id
		task.score = result.percentage_score
	else:
		logger.warning("Journey %s has no worksheet task for result %s", journey.id, result.id)
	_append_unique(updated.worksheet_result_ids, result.id)
	_append_unique(updated.progressed_result_ids, result.id)

	new_tasks: List[Union[ResourceTask, WorksheetTask]] = []
	if decision.ends_journey:
		updated.completed = True
		updated.completed_date = now
		updated.end_reason = decision.end_reason
		if decision.end_reason == EndReason.COMPLETED_ALL_TOPICS:
			progress.completed = True
	else:
		new_tasks = build_tasks(updated, decision.next_topic, decision.next_difficulty)
		updated.tasks.extend(new_tasks)
		_ensure_progress(updated, decision.next_topic)
		if decision.next_topic != current:
			progress.completed = True

	if recommendation.level in (ProgressionLevel.REVIEW, ProgressionLevel.INTENSIVE_REVIEW):
		_append_unique(updated.topics_to_review, current)
	elif progress.completed and current in updated.topics_to_review:
		updated.topics_to_review.remove(current)

	updated.last_updated = now
	return Transition(journey=updated, decision=decision, new_tasks=new_tasks)


def apply_manual_task_update(journey: Journey, day: int, completed: bool, now: Optional[datetime] = None) -> Journey:
	"""Learner-driven completion toggle.

	Resources may be ticked on and off. Worksheets can only be un-completed
	here; completing one has to go through worksheet analysis.
	"""
	updated = journey.model_copy(deep=True)
	task = updated.task_for_day(day)
	if task is None:
		raise NotFoundError("Task", f"day {day}")
	now = now or utcnow()
	progress = _ensure_progress(updated, task.topic)

	if isinstance(task, ResourceTask):
		if completed and not task.completed:
			progress.resources_completed += 1
		elif not completed and task.completed:
			progress.resources_completed = max(0, progress.resources_completed - 1)
		task.completed = completed
		task.completed_at = now if completed else None
	else:
		if completed:
			raise InvalidTaskUpdate("Worksheets can only be marked as complete through the analysis process")
		task.completed = False
		task.completed_at = None
		task.worksheet_result_id = None
		task.score = None
		others = any(
			isinstance(t, WorksheetTask) and t.topic == task.topic and t.completed and t.day != day
			for t in updated.tasks
		)
		if not others:
			progress.completed = False

	updated.last_updated = now
	return updated


def attach_worksheet_result(
	journey: Journey,
	day: int,
	result_id: str,
	score: Optional[int],
	now: Optional[datetime] = None,
) -> Journey:
	updated = journey.model_copy(deep=True)
	task = updated.task_for_day(day)
	if task is None:
		raise NotFoundError("Task", f"day {day}")
	if not isinstance(task, WorksheetTask):
		raise InvalidTaskUpdate(f"Task on day {day} is not a worksheet")
	now = now or utcnow()
	task.completed = True
	task.completed_at = now
	task.worksheet_result_id = result_id
	task.score = score
	_append_unique(updated.worksheet_result_ids, result_id)
	updated.last_updated = now
	return updated


def append_tasks(
	journey: Journey,
	payloads: Sequence[Dict[str, Any]],
	now: Optional[datetime] = None,
) -> Tuple[Journey, List[Union[ResourceTask, WorksheetTask]]]:
	if not payloads:
		raise InvalidTaskUpdate("No tasks supplied")
	updated = journey.model_copy(deep=True)
	start = updated.next_day()
	added: List[Union[ResourceTask, WorksheetTask]] = []
	for offset, payload in enumerate(payloads):
		data = dict(payload)
		if "kind" not in data and data.get("type") in ("resource", "worksheet"):
			data["kind"] = data.pop("type")
		data.update(day=start + offset, completed=False)
		try:
			added.append(_task_adapter.validate_python(data))
		except ValidationError as err:
			raise InvalidTaskUpdate(f"Invalid task at position {offset}: {err.errors()[0]['msg']}") from err
	updated.tasks.extend(added)
	updated.last_updated = now or utcnow()
	return updated, added


def set_completion(
	journey: Journey,
	completed: bool,
	end_reason: Optional[EndReason] = None,
	now: Optional[datetime] = None,
) -> Journey:
	updated = journey.model_copy(deep=True)
	now = now or utcnow()
	updated.completed = completed
	if completed:
		updated.completed_date = now
		if end_reason is not None:
			updated.end_reason = end_reason
	updated.last_updated = now
	return updated


def set_topics_to_review(journey: Journey, topics: Sequence[str], now: Optional[datetime] = None) -> Journey:
	updated = journey.model_copy(deep=True)
	updated.topics_to_review = [canonical_topic(t) or t for t in topics]
	updated.last_updated = now or utcnow()
	return updated


def replace_journey(journey: Journey, data: Dict[str, Any], now: Optional[datetime] = None) -> Journey:
	"""Overwrite journey fields from a client document; id and owner are fixed."""
	data = {to_camel(k) if "_" in k else k: v for k, v in data.items()}
	merged = {**journey.to_document(), **data, "id": journey.id, "userId": journey.user_id}
	merged["lastUpdated"] = (now or utcnow()).isoformat()
	try:
		return Journey.model_validate(merged)
	except ValidationError as err:
		raise InvalidTaskUpdate(f"Invalid journey document: {err.errors()[0]['msg']}") from err
