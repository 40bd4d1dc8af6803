from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends

from ..decoder import decode_progress_analysis
from ..deps import get_progress_client, get_store
from ..errors import OwnershipError, ProgressionConflict, StoreError, VersionConflict
from ..gemini_client import GeminiClient
from ..progression import Transition, apply_progression
from ..repository import (
	learning_resources_for,
	load_journey,
	load_result,
	save_journey,
	save_progress_analysis,
)
from ..schemas import CamelModel, EndReason, ProgressionLevel, ProgressionRecommendation, TopicProgress, WorksheetResult, utcnow
from ..settings import settings
from ..store import DocumentStore
from ..topics import TOPICS, canonical_topic

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ai-progress-check", tags=["progress_check"])

MAX_OUTPUT_TOKENS = 1000
TEMPERATURE = 0.7

SYSTEM_PROMPT = (
	"You are an expert IB Mathematics tutor specializing in detailed progress analysis and learning path "
	"recommendations. Provide thorough, actionable insights based on student performance data. "
	"Respond with ONLY a valid JSON object matching the specified structure."
)


class ProgressCheckRequest(CamelModel):
	worksheet_result_id: str
	user_id: Optional[str] = None


def _build_progress_prompt(result: WorksheetResult, progress: TopicProgress) -> str:
	attempts = progress.attempts
	questions = "\n".join(
		f"Question {i}: {qa.score}/{qa.total_marks}\n"
		+ "\n".join(
			f"  * {s.description} ({'Correct' if s.is_correct else 'Incorrect'}) - {s.feedback}" for s in qa.steps
		)
		for i, qa in enumerate(result.question_analyses, start=1)
	)
	sequence = "\n".join(f"{i}. {t}" for i, t in enumerate(TOPICS, start=1))
	return (
		"As an IB Mathematics expert tutor, analyze this student's worksheet performance in detail.\n\n"
		f"Topic: {result.topic}\nDifficulty: {result.difficulty.value}\n"
		f"Overall Score: {result.total_score}/{result.total_possible_score} ({result.percentage_score}%)\n"
		f"Areas of Improvement: {'; '.join(result.improvements)}\n"
		f"Areas of Strength: {'; '.join(result.strengths)}\n\n"
		f"Previous Attempts:\n - Easy: {attempts.easy}\n - Medium: {attempts.medium}\n"
		f" - Hard: {attempts.hard}\n - Total: {attempts.total}\n\n"
		f"Question-by-Question Analysis:\n{questions}\n\n"
		"Return ONLY a JSON object of this shape:\n"
		'{"conceptualUnderstanding": "...", '
		'"patternAnalysis": {"recurringStrengths": [], "recurringWeaknesses": []}, '
		'"skillBreakdown": {"mastered": [], "developing": [], "needsWork": []}, '
		'"progressionStatus": {"level": "next-topic/review/intensive-review", '
		f'"next-topic": "the next topic name; keep {result.topic} for review levels", '
		'"next-topic-difficulty": "easy/medium/hard", "explanation": "...", "confidenceScore": 0}, '
		'"recommendedFocus": {"topicsForNextWorksheet": [], "conceptsToReview": []}, '
		'"journeyStatus": {"journey-complete": "yes/no", "endReason": "journey-complete/too-many-attempts"}}\n\n'
		f"Topic sequence:\n{sequence}\n\n"
		"If recommending the same topic after a good score, consider a higher difficulty. "
		"For students who have struggled with easy difficulty multiple times, consider ending their journey. "
		"Students who excel at hard difficulty should progress to the next topic."
	)


def _progress_journey(
	store: DocumentStore,
	journey_id: str,
	result: WorksheetResult,
	recommendation: ProgressionRecommendation,
) -> Transition:
	"""Read-modify-write of the journey, retried when another writer got in first."""
	for attempt in range(settings.store_conflict_retries + 1):
		journey, version = load_journey(store, journey_id)
		transition = apply_progression(journey, result, recommendation)
		try:
			save_journey(store, transition.journey, expected_version=version)
			return transition
		except VersionConflict as err:
			logger.warning("Journey %s write conflict (attempt %d): %s", journey_id, attempt + 1, err)
	raise ProgressionConflict(f"Journey {journey_id} kept changing; gave up after {settings.store_conflict_retries} retries")


@router.post("/analyze")
async def analyze_progress(
	req: ProgressCheckRequest,
	store: DocumentStore = Depends(get_store),
	client: GeminiClient = Depends(get_progress_client),
):
	result = load_result(store, req.worksheet_result_id)
	journey, _ = load_journey(store, result.journey_id)
	if req.user_id is not None and journey.user_id != req.user_id:
		raise OwnershipError(journey.id)
	# Checked up front so a stale request does not spend a completion call
	if journey.completed:
		raise ProgressionConflict(f"Journey {journey.id} is already completed")
	if result.id in journey.progressed_result_ids:
		raise ProgressionConflict(f"Worksheet result {result.id} was already applied to journey {journey.id}")

	current_topic = canonical_topic(result.topic) or result.topic
	progress = journey.topic_progress.get(current_topic) or TopicProgress()
	completion = await client.complete(
		SYSTEM_PROMPT,
		_build_progress_prompt(result, progress),
		max_output_tokens=MAX_OUTPUT_TOKENS,
		temperature=TEMPERATURE,
	)
	analysis = decode_progress_analysis(completion.text, current_topic, result.difficulty)
	save_progress_analysis(
		store,
		{
			"worksheetResultId": result.id,
			"userId": result.user_id,
			"topic": result.topic,
			"journeyId": result.journey_id,
			"timestamp": utcnow().isoformat(),
			"analysis": analysis.to_document(),
			"tokenUsage": completion.usage(),
			"apiCost": completion.cost,
			"rawResponse": completion.text,
		},
	)

	transition = _progress_journey(store, journey.id, result, analysis.recommendation)
	decision = transition.decision

	resources: List[Dict[str, Any]] = []
	concepts = analysis.recommended_focus.concepts_to_review
	if analysis.recommendation.level != ProgressionLevel.NEXT_TOPIC and concepts:
		try:
			resources = learning_resources_for(store, concepts)
		except StoreError:
			logger.exception("Failed to look up learning resources for %s", concepts)

	return {
		"success": True,
		"analysis": analysis.to_document(),
		"journeyEnded": decision.ends_journey,
		"endReason": decision.end_reason.value if decision.end_reason else None,
		"journeyComplete": decision.end_reason == EndReason.COMPLETED_ALL_TOPICS,
		"rule": decision.rule,
		"newTasks": [t.model_dump(by_alias=True, mode="json") for t in transition.new_tasks],
		"learningResources": resources,
		"tokenUsage": completion.usage(),
		"apiCost": completion.cost,
		"parseError": analysis.degraded,
	}
