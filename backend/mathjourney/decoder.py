"""Typed decoding of model responses.

Both decoders run the repair pipeline, fall back to a fixed degraded record
when nothing parses, and then coerce whatever came back into a well-shaped
record. They never raise: downstream scoring and progression can rely on
the shape regardless of what the model produced.
"""

from __future__ import annotations

import logging
import math
import re
from typing import Any, Dict, List, Optional, Sequence

from pydantic import Field

from .normalizer import GENERAL_STAGES, LATEX_COMMANDS, MATH_STAGES, recover
from .schemas import (
	CamelModel,
	Difficulty,
	EndReason,
	PatternAnalysis,
	ProgressAnalysis,
	ProgressionLevel,
	ProgressionRecommendation,
	Question,
	QuestionAnalysis,
	RecommendedFocus,
	SkillBreakdown,
	StepAnalysis,
)

logger = logging.getLogger(__name__)

PARSE_ERROR_NOTE = "Unable to determine due to parsing error"
DEFAULT_STRENGTHS = ["General understanding of the topic"]
DEFAULT_IMPROVEMENTS = ["Practice with more complex problems"]
NO_ANSWER = "No answer provided"

# JSON decoding turns an under-escaped "\frac" into a form feed followed by
# "rac"; map such control characters back to the LaTeX command they ate.
_CONTROL_ESCAPES = {"\f": "f", "\t": "t", "\b": "b", "\r": "r"}
_EATEN_COMMANDS = [
	(
		letter,
		re.compile(
			re.escape(ctrl)
			+ "("
			+ "|".join(sorted((c[1:] for c in LATEX_COMMANDS if c[0] == letter), key=len, reverse=True))
			+ r")(?![A-Za-z])"
		),
	)
	for ctrl, letter in _CONTROL_ESCAPES.items()
]


class DecodedAnalysis(CamelModel):
	question_analyses: List[QuestionAnalysis] = Field(default_factory=list)
	strengths: List[str] = Field(default_factory=list)
	improvements: List[str] = Field(default_factory=list)
	# True when the model output could not be parsed at all
	degraded: bool = False
	stage: Optional[str] = None


def restore_latex(text: str) -> str:
	for letter, pattern in _EATEN_COMMANDS:
		text = pattern.sub(lambda m, letter=letter: "\\" + letter + m.group(1), text)
	return text


def _first(data: Dict[str, Any], *keys: str) -> Any:
	for key in keys:
		if data.get(key) is not None:
			return data[key]
	return None


def _as_text(value: Any) -> str:
	if value is None:
		return ""
	if isinstance(value, str):
		return value
	return str(value)


def _as_bool(value: Any) -> bool:
	if isinstance(value, bool):
		return value
	if isinstance(value, (int, float)):
		return value != 0
	if isinstance(value, str):
		return value.strip().lower() in ("true", "yes", "correct", "1")
	return False


def _string_list(value: Any) -> Optional[List[str]]:
	if isinstance(value, str):
		return [value] if value.strip() else None
	if not isinstance(value, list):
		return None
	return [_as_text(v) for v in value if v is not None and _as_text(v).strip()]


def _answer_for(questions: Optional[Sequence[Question]], index: int) -> str:
	if questions and index < len(questions) and questions[index].student_answer:
		return questions[index].student_answer
	return NO_ANSWER


def _question_id_for(questions: Optional[Sequence[Question]], index: int) -> str:
	if questions and index < len(questions):
		return questions[index].id
	return str(index)


# ---------------------------------------------------------------------------
# Worksheet grading
# ---------------------------------------------------------------------------

def _coerce_step(item: Dict[str, Any]) -> StepAnalysis:
	return StepAnalysis(
		description=restore_latex(_as_text(_first(item, "description", "step"))),
		feedback=restore_latex(_as_text(item.get("feedback"))),
		is_correct=_as_bool(_first(item, "isCorrect", "is_correct", "correct")),
		working_shown=restore_latex(_as_text(_first(item, "workingShown", "working_shown"))),
	)


def _coerce_question(item: Any, index: int, questions: Optional[Sequence[Question]]) -> QuestionAnalysis:
	if not isinstance(item, dict):
		item = {}
	raw_steps = _first(item, "steps", "stepByStepAnalysis", "stepAnalysis")
	steps = [_coerce_step(s) for s in raw_steps if isinstance(s, dict)] if isinstance(raw_steps, list) else []
	if not steps:
		steps = [
			StepAnalysis(
				description="Analysis step",
				feedback="No detailed steps were provided by the AI.",
				is_correct=False,
				working_shown=_answer_for(questions, index),
			)
		]
	question_id = _as_text(_first(item, "questionId", "question_id", "id")) or _question_id_for(questions, index)
	return QuestionAnalysis(question_id=question_id, steps=steps)


def _missing_question(index: int, questions: Optional[Sequence[Question]]) -> QuestionAnalysis:
	return QuestionAnalysis(
		question_id=_question_id_for(questions, index),
		steps=[
			StepAnalysis(
				description="Question not analysed",
				feedback="The grader returned no analysis for this question.",
				is_correct=False,
				working_shown=_answer_for(questions, index),
			)
		],
	)


def fallback_worksheet_analysis(
	expected_question_count: int,
	questions: Optional[Sequence[Question]] = None,
) -> DecodedAnalysis:
	analyses = [
		QuestionAnalysis(
			question_id=_question_id_for(questions, i),
			steps=[
				StepAnalysis(
					description="Unable to parse analysis",
					feedback="There was an error processing the AI response. Please try again.",
					is_correct=False,
					working_shown=_answer_for(questions, i),
				)
			],
		)
		for i in range(expected_question_count)
	]
	return DecodedAnalysis(
		question_analyses=analyses,
		strengths=[PARSE_ERROR_NOTE],
		improvements=[PARSE_ERROR_NOTE],
		degraded=True,
	)


def decode_worksheet_analysis(
	raw: Optional[str],
	expected_question_count: int,
	*,
	questions: Optional[Sequence[Question]] = None,
) -> DecodedAnalysis:
	recovery = recover(raw, MATH_STAGES)
	if not recovery.ok:
		logger.warning("Worksheet analysis unparseable; using fallback for %d questions", expected_question_count)
		return fallback_worksheet_analysis(expected_question_count, questions)

	data = recovery.value
	raw_analyses = data.get("questionAnalyses")
	items = raw_analyses if isinstance(raw_analyses, list) else []
	analyses = [_coerce_question(item, i, questions) for i, item in enumerate(items)]
	if len(analyses) > expected_question_count:
		logger.warning("Model returned %d analyses for %d questions; extras dropped", len(analyses), expected_question_count)
		analyses = analyses[:expected_question_count]
	for i in range(len(analyses), expected_question_count):
		analyses.append(_missing_question(i, questions))

	strengths = _string_list(_first(data, "strengths", "areasofstrength", "strengthAreas"))
	improvements = _string_list(_first(data, "improvements", "areasofimprovement", "improvementAreas"))
	return DecodedAnalysis(
		question_analyses=analyses,
		strengths=[restore_latex(s) for s in strengths] if strengths is not None else list(DEFAULT_STRENGTHS),
		improvements=[restore_latex(s) for s in improvements] if improvements is not None else list(DEFAULT_IMPROVEMENTS),
		degraded=False,
		stage=recovery.stage,
	)


# ---------------------------------------------------------------------------
# Progress check
# ---------------------------------------------------------------------------

def _coerce_level(value: Any) -> ProgressionLevel:
	text = re.sub(r"[\s_]+", "-", _as_text(value).strip().lower())
	if "intensive" in text:
		return ProgressionLevel.INTENSIVE_REVIEW
	if "next" in text or text == "advance":
		return ProgressionLevel.NEXT_TOPIC
	return ProgressionLevel.REVIEW


def _coerce_next_topic(value: Any, current_topic: str) -> str:
	text = _as_text(value).strip()
	if not text or text.lower().startswith("same"):
		return current_topic
	return text


def _coerce_difficulty(value: Any, current: Difficulty) -> Difficulty:
	try:
		return Difficulty(_as_text(value).strip().lower())
	except ValueError:
		return current


def _coerce_confidence(value: Any) -> int:
	if isinstance(value, bool):
		return 50
	if isinstance(value, (int, float)):
		number = float(value)
	else:
		match = re.search(r"-?\d+(?:\.\d+)?", _as_text(value))
		if not match:
			return 50
		number = float(match.group(0))
	# json.loads accepts NaN and Infinity
	if not math.isfinite(number):
		return 50
	return max(0, min(100, int(round(number))))


def _coerce_journey_complete(value: Any) -> Optional[bool]:
	if value is None:
		return None
	if isinstance(value, bool):
		return value
	text = _as_text(value).strip().lower()
	if text in ("yes", "true", "y", "1"):
		return True
	if text in ("no", "false", "n", "0"):
		return False
	return None


def _coerce_end_reason(value: Any) -> Optional[EndReason]:
	text = _as_text(value).strip().lower()
	if not text:
		return None
	if "attempt" in text:
		return EndReason.MAX_ATTEMPTS_REACHED
	return EndReason.COMPLETED_ALL_TOPICS


def _dict(value: Any) -> Dict[str, Any]:
	return value if isinstance(value, dict) else {}


def fallback_progress_analysis(current_topic: str) -> ProgressAnalysis:
	return ProgressAnalysis(
		recommendation=ProgressionRecommendation(
			level=ProgressionLevel.REVIEW,
			next_topic=current_topic,
			next_difficulty=Difficulty.MEDIUM,
			explanation="Due to an error processing the AI response, we recommend reviewing the current topic again.",
			confidence_score=50,
		),
		conceptual_understanding="Unable to analyze due to parsing error",
		degraded=True,
	)


def decode_progress_analysis(
	raw: Optional[str],
	current_topic: str,
	current_difficulty: Difficulty,
) -> ProgressAnalysis:
	recovery = recover(raw, GENERAL_STAGES)
	if not recovery.ok:
		logger.warning("Progress analysis unparseable; recommending review of %s", current_topic)
		return fallback_progress_analysis(current_topic)

	data = recovery.value
	status = _dict(_first(data, "progressionStatus", "progression_status"))
	journey_status = _dict(_first(data, "journeyStatus", "journey_status"))
	recommendation = ProgressionRecommendation(
		level=_coerce_level(status.get("level")),
		next_topic=_coerce_next_topic(_first(status, "next-topic", "nextTopic", "next_topic"), current_topic),
		next_difficulty=_coerce_difficulty(
			_first(status, "next-topic-difficulty", "nextTopicDifficulty", "nextDifficulty", "next_difficulty"),
			current_difficulty,
		),
		explanation=_as_text(status.get("explanation")),
		confidence_score=_coerce_confidence(_first(status, "confidenceScore", "confidence_score", "confidence")),
		journey_complete=_coerce_journey_complete(
			_first(journey_status, "journey-complete", "journeyComplete", "journey_complete")
		),
		end_reason=_coerce_end_reason(_first(journey_status, "endReason", "end_reason", "end-reason")),
	)

	patterns = _dict(data.get("patternAnalysis"))
	skills = _dict(data.get("skillBreakdown"))
	focus = _dict(data.get("recommendedFocus"))
	return ProgressAnalysis(
		recommendation=recommendation,
		conceptual_understanding=_as_text(data.get("conceptualUnderstanding")),
		pattern_analysis=PatternAnalysis(
			recurring_strengths=_string_list(patterns.get("recurringStrengths")) or [],
			recurring_weaknesses=_string_list(patterns.get("recurringWeaknesses")) or [],
		),
		skill_breakdown=SkillBreakdown(
			mastered=_string_list(skills.get("mastered")) or [],
			developing=_string_list(skills.get("developing")) or [],
			needs_work=_string_list(skills.get("needsWork")) or [],
		),
		recommended_focus=RecommendedFocus(
			topics_for_next_worksheet=_string_list(focus.get("topicsForNextWorksheet")) or [],
			concepts_to_review=_string_list(focus.get("conceptsToReview")) or [],
		),
		degraded=False,
	)
