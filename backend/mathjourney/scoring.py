from __future__ import annotations
import math
from typing import List, Sequence

from pydantic import Field

from .decoder import DecodedAnalysis
from .schemas import CamelModel, MarkScheme, Question, QuestionAnalysis, StepAnalysis


class ScoredWorksheet(CamelModel):
	question_analyses: List[QuestionAnalysis] = Field(default_factory=list)
	total_score: int = 0
	total_possible_score: int = 0
	percentage_score: int = 0
	strengths: List[str] = Field(default_factory=list)
	improvements: List[str] = Field(default_factory=list)
	degraded: bool = False


def round_half_up(value: float) -> int:
	return int(math.floor(value + 0.5))


def percentage(score: int, total: int) -> int:
	if total <= 0:
		return 0
	return round_half_up(100 * score / total)


def score_question(steps: Sequence[StepAnalysis], scheme: MarkScheme) -> int:
	"""Marks earned for one question.

	When the grader returned one step per mark-scheme step, each correct step
	earns that step's marks. Otherwise the total is scaled by the fraction of
	correct steps. The result is clamped to [0, total_marks].
	"""
	total = scheme.total_marks
	if steps and len(steps) == len(scheme.steps):
		score = sum(mark.marks for step, mark in zip(steps, scheme.steps) if step.is_correct)
	elif steps:
		correct = sum(1 for step in steps if step.is_correct)
		score = round_half_up(total * correct / len(steps))
	else:
		score = 0
	return max(0, min(total, score))


def score_worksheet(analysis: DecodedAnalysis, questions: Sequence[Question]) -> ScoredWorksheet:
	scored: List[QuestionAnalysis] = []
	total_score = 0
	total_possible = 0
	for i, question in enumerate(questions):
		qa = analysis.question_analyses[i] if i < len(analysis.question_analyses) else QuestionAnalysis(question_id=question.id)
		total_marks = question.mark_scheme.total_marks
		score = score_question(qa.steps, question.mark_scheme)
		scored.append(
			qa.model_copy(
				update={
					"score": score,
					"total_marks": total_marks,
					"percentage": percentage(score, total_marks),
				}
			)
		)
		total_score += score
		total_possible += total_marks
	return ScoredWorksheet(
		question_analyses=scored,
		total_score=total_score,
		total_possible_score=total_possible,
		percentage_score=percentage(total_score, total_possible),
		strengths=list(analysis.strengths),
		improvements=list(analysis.improvements),
		degraded=analysis.degraded,
	)
