from __future__ import annotations
import logging
from typing import List

from fastapi import APIRouter, Depends
from pydantic import Field

from ..decoder import decode_worksheet_analysis
from ..deps import get_completion_client, get_store
from ..errors import StoreError
from ..gemini_client import GeminiClient
from ..repository import load_result, save_result
from ..schemas import CamelModel, Difficulty, Question, WorksheetResult, utcnow, worksheet_result_id
from ..scoring import score_worksheet
from ..store import DocumentStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/worksheet-analysis", tags=["worksheet_analysis"])

MAX_OUTPUT_TOKENS = 2500
TEMPERATURE = 0.4

SYSTEM_PROMPT = (
	"You are an expert IB Mathematics examiner specializing in Numbers and Algebra topics. "
	"You must use LaTeX notation for ALL mathematical expressions and respond with ONLY a valid JSON object "
	"matching the specified structure. Use $ for inline math, $$ for display math, and double backslash for "
	"LaTeX commands (\\\\frac, \\\\cdot, \\\\sqrt, etc.)."
)


class AnalyzeWorksheetRequest(CamelModel):
	user_id: str
	journey_id: str
	worksheet_id: str
	topic: str
	difficulty: Difficulty
	questions: List[Question] = Field(min_length=1)


def _build_analysis_prompt(req: AnalyzeWorksheetRequest) -> str:
	blocks = []
	for i, q in enumerate(req.questions, start=1):
		steps = "\n".join(f"- {s.description} ({s.marks} marks)" for s in q.mark_scheme.steps)
		errors = "\n".join(q.mark_scheme.common_errors) or "None listed"
		blocks.append(
			f"Question {i} (id {q.id}): {q.text}\n"
			f"Student's Answer: {q.student_answer or 'No answer provided'}\n"
			f"Mark Scheme ({q.mark_scheme.total_marks} marks):\nSteps:\n{steps}\n"
			f"Common Errors:\n{errors}"
		)
	return (
		"As an expert IB Mathematics examiner, analyze this student's answers for multiple questions in detail.\n"
		"Use LaTeX for ALL mathematical expressions, with double backslashes inside JSON strings.\n\n"
		f"Topic: {req.topic}\nDifficulty Level: {req.difficulty.value}\n\n"
		+ "\n\n".join(blocks)
		+ "\n\nReturn ONLY a JSON object of this shape:\n"
		'{"questionAnalyses": [{"questionId": "string (matching the input question id)", '
		'"steps": [{"description": "short description of the step", "feedback": "short feedback", '
		'"isCorrect": true, "workingShown": "the student\'s working for this step"}]}], '
		'"strengths": ["..."], "improvements": ["..."]}\n\n'
		"Rules:\n"
		"1. One questionAnalyses entry per question, in the order given.\n"
		"2. One steps entry per mark-scheme step, in the order of the mark scheme.\n"
		"3. Do not compute scores; they are derived from isCorrect."
	)


@router.post("/analyze")
async def analyze_worksheet(
	req: AnalyzeWorksheetRequest,
	store: DocumentStore = Depends(get_store),
	client: GeminiClient = Depends(get_completion_client),
):
	completion = await client.complete(
		SYSTEM_PROMPT,
		_build_analysis_prompt(req),
		max_output_tokens=MAX_OUTPUT_TOKENS,
		temperature=TEMPERATURE,
	)
	decoded = decode_worksheet_analysis(completion.text, len(req.questions), questions=req.questions)
	scored = score_worksheet(decoded, req.questions)

	timestamp = utcnow()
	result = WorksheetResult(
		id=worksheet_result_id(req.journey_id, req.worksheet_id, req.user_id, timestamp),
		user_id=req.user_id,
		journey_id=req.journey_id,
		worksheet_id=req.worksheet_id,
		topic=req.topic,
		difficulty=req.difficulty,
		timestamp=timestamp,
		**scored.model_dump(),
	)
	result_id = result.id
	try:
		save_result(store, result)
	except StoreError:
		# The learner still gets their feedback
		logger.exception("Failed to store worksheet result %s", result.id)
		result_id = None
	logger.info(
		"Worksheet %s for %s scored %d/%d (degraded=%s)",
		req.worksheet_id, req.user_id, scored.total_score, scored.total_possible_score, scored.degraded,
	)
	return {
		"success": True,
		"analysis": {**result.to_document(), "worksheetResultId": result_id},
		"tokenUsage": completion.usage(),
		"apiCost": completion.cost,
	}


@router.get("/result/{result_id}")
def get_result(result_id: str, store: DocumentStore = Depends(get_store)):
	return {"success": True, "analysis": load_result(store, result_id).to_document()}
