"""Typed entities shared by the grading, scoring and progression code.

Attribute names are snake_case; documents and API payloads use the camelCase
aliases produced by the alias generator.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
	return datetime.now(timezone.utc)


class CamelModel(BaseModel):
	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

	def to_document(self) -> Dict[str, Any]:
		return self.model_dump(by_alias=True, mode="json")


class Difficulty(str, Enum):
	EASY = "easy"
	MEDIUM = "medium"
	HARD = "hard"


class EndReason(str, Enum):
	COMPLETED_ALL_TOPICS = "completed_all_topics"
	MAX_ATTEMPTS_REACHED = "max_attempts_reached"


class ProgressionLevel(str, Enum):
	NEXT_TOPIC = "next-topic"
	REVIEW = "review"
	INTENSIVE_REVIEW = "intensive-review"


# ---------------------------------------------------------------------------
# Worksheets and grading
# ---------------------------------------------------------------------------

class MarkSchemeStep(CamelModel):
	description: str
	marks: int = Field(ge=0)


class MarkScheme(CamelModel):
	total_marks: int = Field(ge=0)
	steps: List[MarkSchemeStep] = Field(default_factory=list)
	common_errors: List[str] = Field(default_factory=list)


class Question(CamelModel):
	id: str
	text: str
	student_answer: str = ""
	mark_scheme: MarkScheme


class Worksheet(CamelModel):
	id: str
	topic: str
	difficulty: Difficulty
	questions: List[Question] = Field(default_factory=list)
	created_at: datetime = Field(default_factory=utcnow)


class StepAnalysis(CamelModel):
	description: str = ""
	feedback: str = ""
	is_correct: bool = False
	working_shown: str = ""


class QuestionAnalysis(CamelModel):
	question_id: str
	steps: List[StepAnalysis] = Field(default_factory=list)
	score: int = 0
	total_marks: int = 0
	percentage: int = 0


class WorksheetResult(CamelModel):
	id: str
	user_id: str
	journey_id: str
	worksheet_id: str
	topic: str
	difficulty: Difficulty
	timestamp: datetime
	question_analyses: List[QuestionAnalysis] = Field(default_factory=list)
	total_score: int = 0
	total_possible_score: int = 0
	percentage_score: int = 0
	strengths: List[str] = Field(default_factory=list)
	improvements: List[str] = Field(default_factory=list)
	degraded: bool = False


def worksheet_result_id(journey_id: str, worksheet_id: str, user_id: str, timestamp: datetime) -> str:
	millis = int(timestamp.timestamp() * 1000)
	return f"{journey_id}_{worksheet_id}_{user_id}_{millis}"


# ---------------------------------------------------------------------------
# Journeys
# ---------------------------------------------------------------------------

class AttemptCounters(CamelModel):
	easy: int = Field(default=0, ge=0)
	medium: int = Field(default=0, ge=0)
	hard: int = Field(default=0, ge=0)
	total: int = Field(default=0, ge=0)

	def for_difficulty(self, difficulty: Difficulty) -> int:
		return getattr(self, difficulty.value)

	def record(self, difficulty: Difficulty) -> None:
		setattr(self, difficulty.value, self.for_difficulty(difficulty) + 1)
		self.total += 1


class TopicProgress(CamelModel):
	completed: bool = False
	attempts: AttemptCounters = Field(default_factory=AttemptCounters)
	last_attempt_date: Optional[datetime] = None
	best_score: int = Field(default=0, ge=0, le=100)
	resources_completed: int = Field(default=0, ge=0)
	total_resources: int = Field(default=0, ge=0)


class ResourceTask(CamelModel):
	kind: Literal["resource"] = "resource"
	topic: str
	day: int = Field(ge=1)
	title: str
	url: str
	resource_type: str
	completed: bool = False
	completed_at: Optional[datetime] = None


class WorksheetTask(CamelModel):
	kind: Literal["worksheet"] = "worksheet"
	topic: str
	day: int = Field(ge=1)
	worksheet_id: str
	difficulty: Difficulty
	completed: bool = False
	completed_at: Optional[datetime] = None
	worksheet_result_id: Optional[str] = None
	score: Optional[int] = None


Task = Annotated[Union[ResourceTask, WorksheetTask], Field(discriminator="kind")]


class Journey(CamelModel):
	id: str
	user_id: str
	unit: str
	course_level: str
	goals: Any = None
	preferences: Any = None
	start_date: str
	last_updated: datetime = Field(default_factory=utcnow)
	completed: bool = False
	completed_date: Optional[datetime] = None
	end_reason: Optional[EndReason] = None
	tasks: List[Task] = Field(default_factory=list)
	topic_progress: Dict[str, TopicProgress] = Field(default_factory=dict)
	worksheet_result_ids: List[str] = Field(default_factory=list)
	topics_to_review: List[str] = Field(default_factory=list)
	progressed_result_ids: List[str] = Field(default_factory=list)

	@field_validator("tasks")
	@classmethod
	def _days_strictly_increasing(cls, tasks):
		days = [task.day for task in tasks]
		if any(b <= a for a, b in zip(days, days[1:])):
			raise ValueError("task days must be unique and strictly increasing")
		return tasks

	def next_day(self) -> int:
		return max((task.day for task in self.tasks), default=0) + 1

	def task_for_day(self, day: int) -> Optional[Union[ResourceTask, WorksheetTask]]:
		for task in self.tasks:
			if task.day == day:
				return task
		return None

	def progress_for(self, topic: str) -> TopicProgress:
		if topic not in self.topic_progress:
			self.topic_progress[topic] = TopicProgress()
		return self.topic_progress[topic]


# ---------------------------------------------------------------------------
# Progress analysis (model recommendation)
# ---------------------------------------------------------------------------

class ProgressionRecommendation(CamelModel):
	level: ProgressionLevel = ProgressionLevel.REVIEW
	next_topic: str
	next_difficulty: Difficulty = Difficulty.MEDIUM
	explanation: str = ""
	confidence_score: int = Field(default=50, ge=0, le=100)
	journey_complete: Optional[bool] = None
	end_reason: Optional[EndReason] = None


class PatternAnalysis(CamelModel):
	recurring_strengths: List[str] = Field(default_factory=list)
	recurring_weaknesses: List[str] = Field(default_factory=list)


class SkillBreakdown(CamelModel):
	mastered: List[str] = Field(default_factory=list)
	developing: List[str] = Field(default_factory=list)
	needs_work: List[str] = Field(default_factory=list)


class RecommendedFocus(CamelModel):
	topics_for_next_worksheet: List[str] = Field(default_factory=list)
	concepts_to_review: List[str] = Field(default_factory=list)


class ProgressAnalysis(CamelModel):
	recommendation: ProgressionRecommendation
	conceptual_understanding: str = ""
	pattern_analysis: PatternAnalysis = Field(default_factory=PatternAnalysis)
	skill_breakdown: SkillBreakdown = Field(default_factory=SkillBreakdown)
	recommended_focus: RecommendedFocus = Field(default_factory=RecommendedFocus)
	degraded: bool = False
